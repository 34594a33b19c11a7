from typed_grpc.client.channel import Channel
from typed_grpc.client.client import Client, ClientCall

__all__ = ["Channel", "Client", "ClientCall"]
