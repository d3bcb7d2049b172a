from lecture_capture.clients.gateway_client import GatewayClient
from lecture_capture.clients.groq_client import GroqClient

__all__ = ["GatewayClient", "GroqClient"]
