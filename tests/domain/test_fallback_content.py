"""Test templated fallback and static emergency content."""

import pytest

from coursegen.core.exceptions import FallbackGenerationError
from coursegen.generation.fallback import (
    FALLBACK_CHUNKS_PER_MODULE,
    FALLBACK_QUIZ_QUESTIONS,
    emergency_content,
    fallback_metadata,
    fallback_module,
    generate_fallback_content,
)
from coursegen.queue.schemas import MetadataPayload, TaskKind

pytestmark = pytest.mark.unit


def test_metadata_fallback_is_templated_from_prompt(metadata_payload):
    """Metadata fallback builds title and 5-module outline from the prompt."""
    content = generate_fallback_content(TaskKind.METADATA, metadata_payload)

    assert content["title"] == "Course on Python"
    assert content["total_modules"] == 5
    assert len(content["module_list"]) == 5
    assert content["module_list"][0] == "Introduction to Python"
    assert content["module_list"][1] == "Fundamentals of Python"
    assert "Python" in content["description"]
    assert content["final_project"]["title"] == "Python Final Project"
    assert content["language"] == "en"


def test_metadata_fallback_prerequisites_depend_on_level():
    """Beginners need no prerequisites; other levels need basic knowledge."""
    beginner = fallback_metadata(MetadataPayload(prompt="Go", level="beginner"))
    advanced = fallback_metadata(MetadataPayload(prompt="Go", level="advanced"))

    assert beginner["prerequisites"] == ["None"]
    assert advanced["prerequisites"] == ["Basic knowledge of Go"]


def test_metadata_fallback_keeps_interests_as_topics(metadata_payload):
    """Learner interests are appended to the topic list."""
    content = fallback_metadata(metadata_payload)
    assert content["topics"][0] == "Python"
    assert "automation" in content["topics"]


def test_module_fallback_has_6_chunks_and_7_questions(module_payload):
    """Module fallback synthesizes 6 sections and a 7-question quiz."""
    content = generate_fallback_content(TaskKind.MODULE, module_payload)

    assert content["title"] == "Fundamentals of Python"
    assert content["total_chunks"] == FALLBACK_CHUNKS_PER_MODULE == 6
    assert len(content["chunks"]) == 6
    assert content["chunks"][0]["title"] == "Fundamentals of Python - Part 1"
    assert content["chunks"][5]["title"] == "Fundamentals of Python - Part 6"
    assert content["chunks"][2]["content"].startswith("## Fundamentals of Python - Part 3")
    assert len(content["quiz"]["questions"]) == FALLBACK_QUIZ_QUESTIONS == 7


def test_module_fallback_quiz_questions_are_well_formed(module_payload):
    """Every quiz question has 4 options and a valid correct answer index."""
    for question in fallback_module(module_payload)["quiz"]["questions"]:
        assert len(question["options"]) == 4
        assert 0 <= question["correct_answer"] < 4
        assert question["explanation"]


def test_fallback_is_deterministic(module_payload):
    """Same payload always yields the same fallback content."""
    assert fallback_module(module_payload) == fallback_module(module_payload)


def test_fallback_rejects_mismatched_payload(module_payload):
    """A module payload cannot produce metadata fallback content."""
    with pytest.raises(FallbackGenerationError):
        generate_fallback_content(TaskKind.METADATA, module_payload)


def test_fallback_rejects_blank_prompt():
    """A whitespace-only prompt cannot be templated."""
    with pytest.raises(FallbackGenerationError):
        fallback_metadata(MetadataPayload(prompt="   "))


def test_emergency_metadata_is_minimal():
    """Emergency metadata is a generic 3-module course."""
    content = emergency_content(TaskKind.METADATA)

    assert content["title"] == "Personalized Course"
    assert content["total_modules"] == 3
    assert content["module_list"] == ["Introduction", "Development", "Conclusion"]


def test_emergency_module_is_minimal():
    """Emergency module content has one chunk and an empty quiz."""
    content = emergency_content(TaskKind.MODULE)

    assert content["total_chunks"] == 1
    assert len(content["chunks"]) == 1
    assert content["quiz"]["questions"] == []
