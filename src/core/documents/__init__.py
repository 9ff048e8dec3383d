from src.core.documents.models import DocumentSequence
from src.core.documents.number_generator import DocumentNumberGenerator

__all__ = ["DocumentSequence", "DocumentNumberGenerator"]
