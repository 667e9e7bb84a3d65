"""SSH agent protocol server backed by the encrypted key store."""

from .handlers import AgentHandler, SecureAgent, ResidentAgent
from .server import AgentServer, build_agent, run_agent

__all__ = [
    "AgentHandler",
    "SecureAgent",
    "ResidentAgent",
    "AgentServer",
    "build_agent",
    "run_agent",
]
