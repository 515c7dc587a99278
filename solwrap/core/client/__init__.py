from .rpc_client import RpcClient

__all__ = ["RpcClient"]
