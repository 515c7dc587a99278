from setuptools import setup, find_packages

setup(
    name="solwrap",
    version="0.1.0",
    description="Runtime wrappers for compiled Solidity contract artifacts",
    packages=find_packages(),
    package_data={"solwrap.tests": ["fixtures/*"]},
    install_requires=[
        "web3>=6.0.0",
        "eth-abi>=4.0.0",
        "eth-utils>=2.0.0",
        "eth-account>=0.8.0",
        "aiohttp>=3.8.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "solwrap=solwrap.main:run",
        ],
    },
)
