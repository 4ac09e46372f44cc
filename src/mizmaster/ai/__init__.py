"""Model transport, librarian tools and turn orchestration."""

from .client import AIClient, ApproxCharCounter, ChatSession, ClientSettings
from .prompts import build_system_instruction

__all__ = ["AIClient", "ApproxCharCounter", "ChatSession", "ClientSettings", "build_system_instruction"]
