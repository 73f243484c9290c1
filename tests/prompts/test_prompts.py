# tests/prompts/test_prompts.py

import pytest
from pathlib import Path

from listing_engine.models.manager import DEFAULT_PROMPTS_DIR
from listing_engine.models.prompts import PromptManager, PromptConfig


@pytest.fixture
def temp_prompts_dir(tmp_path):
    """Create a temporary prompts directory with test data"""
    prompts_path = tmp_path / "prompts"

    grounding_v1 = prompts_path / "listing" / "grounding" / "v1"
    grounding_v1.mkdir(parents=True)
    (grounding_v1 / "config.yaml").write_text("description: Identify the product and check policy\n")
    (grounding_v1 / "system.j2").write_text("You identify products from photos.")
    (grounding_v1 / "user.j2").write_text("""Prohibited categories:
{% for category in prohibited_categories %}
- {{ category }}
{% endfor %}
{% if user_condition is defined and user_condition %}
Seller says: {{ user_condition }}
{% endif %}""")

    # second version without a config file
    grounding_v2 = prompts_path / "listing" / "grounding" / "v2"
    grounding_v2.mkdir(parents=True)
    (grounding_v2 / "system.j2").write_text("v2 system")
    (grounding_v2 / "user.j2").write_text("Brand: {{ brand }}")

    minimal_v1 = prompts_path / "minimal" / "v1"
    minimal_v1.mkdir(parents=True)
    (minimal_v1 / "config.yaml").write_text("")
    (minimal_v1 / "system.j2").write_text("Simple system prompt.")
    (minimal_v1 / "user.j2").write_text("User: {{ input }}")

    return prompts_path


@pytest.fixture
def manager(temp_prompts_dir):
    """Create a PromptManager with test data"""
    return PromptManager(temp_prompts_dir)


# ============ Prompt Loading Tests ============

class TestPromptLoading:
    def test_discovers_all_versions(self, manager):
        assert manager.refs == ["listing/grounding@v1", "listing/grounding@v2", "minimal@v1"]

    def test_load_valid_prompt_with_config(self, manager):
        """Load a prompt that exists with config file"""
        config = manager.load_prompt("listing/grounding@v1")

        assert isinstance(config, PromptConfig)
        assert config.name == "listing/grounding"
        assert config.version == "v1"
        assert config.ref == "listing/grounding@v1"
        assert config.description == "Identify the product and check policy"

    def test_load_prompt_without_config(self, manager):
        config = manager.load_prompt("listing/grounding@v2")
        assert config.description is None

    def test_empty_config_file(self, manager):
        assert manager.load_prompt("minimal@v1").description is None

    def test_invalid_reference(self, manager):
        with pytest.raises(ValueError, match="Invalid prompt reference"):
            manager.load_prompt("listing/grounding")

    def test_unknown_prompt(self, manager):
        with pytest.raises(FileNotFoundError, match="Prompt not found: listing/grounding@v9"):
            manager.load_prompt("listing/grounding@v9")

    def test_missing_prompts_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Prompts dir not found"):
            PromptManager(tmp_path / "nope")

    def test_missing_user_template_fails_at_startup(self, tmp_path):
        """
        Test: A prompt directory with system.j2 but no user.j2
        How: Build a PromptManager over it
        Ensures: The broken prompt is reported when templates are compiled, not on first use
        """
        broken = tmp_path / "prompts" / "listing" / "broken" / "v1"
        broken.mkdir(parents=True)
        (broken / "system.j2").write_text("system")
        with pytest.raises(FileNotFoundError, match="Template file not found"):
            PromptManager(tmp_path / "prompts")


# ============ Rendering Tests ============

class TestPromptRendering:
    def test_render_messages(self, manager):
        messages = manager.render("listing/grounding@v1", {"prohibited_categories": ["Weapons", "Drugs"]})

        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == "You identify products from photos."
        assert "- Weapons" in messages[1]["content"]
        assert "- Drugs" in messages[1]["content"]
        assert "Seller says" not in messages[1]["content"]

    def test_optional_variable(self, manager):
        messages = manager.render("listing/grounding@v1", {"prohibited_categories": [], "user_condition": "New"})
        assert "Seller says: New" in messages[1]["content"]

    def test_missing_required_variable(self, manager):
        """
        Test: Rendering without a variable the template needs
        How: Render v2 with no 'brand'
        Ensures: StrictUndefined surfaces as a ValueError naming the prompt
        """
        with pytest.raises(ValueError, match="Missing required variable in prompt listing/grounding@v2"):
            manager.render("listing/grounding@v2", {})

    def test_extra_variables_are_ignored(self, manager):
        messages = manager.render("minimal@v1", {"input": "hi", "unused": 1})
        assert messages[1]["content"] == "User: hi"


class TestPackagedPrompts:
    def test_all_listing_prompts_present(self):
        manager = PromptManager(DEFAULT_PROMPTS_DIR)
        for name in ("triage", "grounding", "attributes", "pricing", "content", "snapshot", "from_snapshot"):
            ref = f"listing/{name}@v1"
            assert ref in manager.refs
            assert manager.load_prompt(ref).description

    def test_triage_prompt_renders(self):
        manager = PromptManager(Path(DEFAULT_PROMPTS_DIR))
        messages = manager.render("listing/triage@v1", {"image_count": 4, "max_recommended": 3})
        assert "4" in messages[1]["content"]
