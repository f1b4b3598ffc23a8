"""Services for generation, storage and study content."""

from studymode.services.chat_orchestrator import ChatOrchestrator
from studymode.services.gemini import gemini_client
from studymode.services.s3 import s3_service

__all__ = ["ChatOrchestrator", "gemini_client", "s3_service"]
