"""Chat message intake: classify team messages and reconcile them with tasks."""

from .database import TaskDatabase
from .fallback import FallbackClassifier
from .intake_service import MessageIntakeService, create_intake_service
from .llm_extractor import OllamaExtractionBackend, StructuredExtractor
from .models import (
    ExtractionResult,
    IntakeResult,
    Message,
    MessageType,
    Task,
    TaskAction,
    TaskPriority,
    TaskStatus,
    User,
)
from .rule_classifier import DeterministicClassifier
from .task_matcher import TaskMatcher
from .task_naming import InMemorySequenceCounter, TaskNamingEngine

__all__ = [
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskAction",
    "MessageType",
    "Message",
    "User",
    "ExtractionResult",
    "IntakeResult",
    "TaskDatabase",
    "DeterministicClassifier",
    "StructuredExtractor",
    "OllamaExtractionBackend",
    "FallbackClassifier",
    "TaskMatcher",
    "TaskNamingEngine",
    "InMemorySequenceCounter",
    "MessageIntakeService",
    "create_intake_service",
]
