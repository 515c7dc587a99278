"""
solwrap test package

Run with:
    pytest solwrap/ -v
"""
