from dialog_core.prompts import DEFAULT_SYSTEM_PROMPT, load_system_prompt


def test_load_bundled_prompt():
    text = load_system_prompt()
    assert text
    assert "web_search" in text


def test_custom_prompt_file(tmp_path):
    path = tmp_path / "prompt.md"
    path.write_text("  Answer like a pirate.\n", encoding="utf-8")
    assert load_system_prompt(path) == "Answer like a pirate."


def test_missing_or_empty_file_falls_back(tmp_path):
    assert load_system_prompt(tmp_path / "missing.md") == DEFAULT_SYSTEM_PROMPT
    empty = tmp_path / "empty.md"
    empty.write_text("   ", encoding="utf-8")
    assert load_system_prompt(empty) == DEFAULT_SYSTEM_PROMPT
