import pytest

from h5p_assist.llm.prompts import CONTENT_TYPE_GUIDANCE, DEFAULT_GUIDANCE, SECTIONS, build_prompt, templatize


@pytest.mark.parametrize("content_type", sorted(CONTENT_TYPE_GUIDANCE))
def test_known_types_get_their_guidance(content_type):
    assert templatize(content_type) == CONTENT_TYPE_GUIDANCE[content_type]


def test_unknown_type_gets_default_guidance():
    assert templatize("H5P.Unknown") == DEFAULT_GUIDANCE


def test_prompt_mentions_type_description_and_sections():
    prompt = build_prompt("H5P.Timeline", "  history of flight  ")
    assert prompt.startswith(
        "As an H5P content creation assistant, help me create H5P.Timeline content "
        "with the following description: history of flight."
    )
    assert CONTENT_TYPE_GUIDANCE["H5P.Timeline"] in prompt
    for i, section in enumerate(SECTIONS, start=1):
        assert f"{i}. {section}" in prompt
    assert prompt.endswith("bullet points for easy implementation.")
