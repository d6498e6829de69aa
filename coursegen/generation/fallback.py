"""Templated fallback and static emergency content.

Fallback content is built deterministically from the task payload when the
collaborator keeps failing. Emergency content ignores the payload entirely and
is the last resort when even the fallback templates fail.
"""

from typing import assert_never

from coursegen.core.exceptions import FallbackGenerationError
from coursegen.queue.schemas import (
    GenerationResult,
    MetadataPayload,
    ModulePayload,
    Payload,
    TaskKind,
)

FALLBACK_TOTAL_MODULES = 5
FALLBACK_CHUNKS_PER_MODULE = 6
FALLBACK_QUIZ_QUESTIONS = 7
FALLBACK_SIZE_ESTIMATE = "4-6 hours"

BEGINNER_LEVELS = {"beginner", "principiante"}


def generate_fallback_content(kind: TaskKind, payload: Payload) -> GenerationResult:
    """Build templated content for a task whose generation attempts are exhausted.

    Raises:
        FallbackGenerationError: If the payload does not fit the task kind
    """
    match kind:
        case TaskKind.METADATA:
            if not isinstance(payload, MetadataPayload):
                raise FallbackGenerationError(f"Metadata fallback needs MetadataPayload, got {type(payload).__name__}")
            return fallback_metadata(payload)
        case TaskKind.MODULE:
            if not isinstance(payload, ModulePayload):
                raise FallbackGenerationError(f"Module fallback needs ModulePayload, got {type(payload).__name__}")
            return fallback_module(payload)
        case _:
            assert_never(kind)


def fallback_metadata(payload: MetadataPayload) -> GenerationResult:
    topic = payload.prompt.strip()
    if not topic:
        raise FallbackGenerationError("Cannot build fallback metadata from an empty prompt")

    if payload.level.lower() in BEGINNER_LEVELS:
        prerequisites = ["None"]
    else:
        prerequisites = [f"Basic knowledge of {topic}"]

    return {
        "title": f"Course on {topic}",
        "description": (
            f"A complete, structured course on {topic}. You will go from the core concepts "
            "to advanced techniques, with practical examples and real-world exercises."
        ),
        "prerequisites": prerequisites,
        "total_modules": FALLBACK_TOTAL_MODULES,
        "module_list": [
            f"Introduction to {topic}",
            f"Fundamentals of {topic}",
            "Practical Techniques",
            "Advanced Use Cases",
            "Final Project and Best Practices",
        ],
        "topics": [topic, "Fundamentals", "Practice", "Use cases", "Project", *payload.interests],
        "introduction": (
            f"Welcome to this complete course on {topic}. "
            "It is designed to take you from zero to a professional level."
        ),
        "final_project": {
            "title": f"{topic} Final Project",
            "description": f"A hands-on project that demonstrates full command of {topic}",
            "requirements": ["Complete every module", "Apply the concepts learned"],
            "deliverables": ["Working project", "Complete documentation"],
        },
        "total_size_estimate": FALLBACK_SIZE_ESTIMATE,
        "language": payload.language,
    }


def fallback_module(payload: ModulePayload) -> GenerationResult:
    title = payload.module_title.strip()
    if not title:
        raise FallbackGenerationError("Cannot build a fallback module without a module title")

    chunks = [
        {"title": f"{title} - Part {number}", "content": _chunk_markdown(title, number)}
        for number in range(1, FALLBACK_CHUNKS_PER_MODULE + 1)
    ]
    questions = [
        {
            "question": f"Question {number}: which of these is a key idea of {title}?",
            "options": ["Option A", "Option B", "Option C", "Option D"],
            "correct_answer": 0,
            "explanation": f"Option A summarises a core concept of {title}.",
        }
        for number in range(1, FALLBACK_QUIZ_QUESTIONS + 1)
    ]

    return {
        "title": title,
        "description": (
            f"In this module you will learn the essential concepts of {title} "
            "with practical examples and real applications."
        ),
        "module_order": payload.module_order,
        "chunks": chunks,
        "quiz": {"title": f"Quiz: {title}", "questions": questions},
        "total_chunks": FALLBACK_CHUNKS_PER_MODULE,
    }


def emergency_content(kind: TaskKind) -> GenerationResult:
    """Minimal valid content with no dependency on the payload."""
    match kind:
        case TaskKind.METADATA:
            return {
                "title": "Personalized Course",
                "description": "A course designed especially for you.",
                "total_modules": 3,
                "module_list": ["Introduction", "Development", "Conclusion"],
                "language": "en",
            }
        case TaskKind.MODULE:
            return {
                "title": "Module Content",
                "description": "Quality learning content.",
                "chunks": [
                    {
                        "title": "Introduction",
                        "content": "## Introduction\n\nQuality learning content.",
                    },
                ],
                "quiz": {"title": "Quiz", "questions": []},
                "total_chunks": 1,
            }
        case _:
            assert_never(kind)


def _chunk_markdown(title: str, number: int) -> str:
    return f"""## {title} - Part {number}

### Introduction

In this section we explore fundamental aspects of {title} that are essential for your professional growth.

### Key Concepts

- **Concept 1**: A detailed description of the first important concept
- **Concept 2**: An explanation of the second relevant concept
- **Concept 3**: An analysis of the third fundamental point

### Practical Example

```python
# Example related to {title}
example = {{
    "concept": "{title}",
    "application": "practice",
    "result": "effective learning",
}}
```

### Real Applications

This knowledge applies to:

1. **Professional projects**: how to use it at work
2. **Case studies**: real-world examples
3. **Best practices**: industry recommendations

> **Pro tip**: apply these concepts in your own projects to reinforce what you learn.

### Next Step

In the next section we keep going deeper into {title} with more advanced techniques."""
