"""Generation collaborator boundary, test double and fallback content."""

from coursegen.generation.base import ContentGenerator
from coursegen.generation.fake import FakeContentGenerator
from coursegen.generation.fallback import emergency_content, generate_fallback_content

__all__ = ["ContentGenerator", "FakeContentGenerator", "emergency_content", "generate_fallback_content"]
