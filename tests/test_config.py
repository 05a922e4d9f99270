from pathlib import Path

import pytest

from parley.config import DEFAULT_PRESETS, load_config
from parley.models import DiscussionMode

REPO_CONFIG = Path(__file__).parent.parent / "config.yaml"


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_empty_file_yields_builtins(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("")

    config = load_config(str(path))

    assert len(config.agents) == 6
    assert set(config.presets) == set(DEFAULT_PRESETS)
    assert config.commands == []
    assert config.defaults.max_tool_iterations == 10
    assert config.defaults.moderator_extra_turns == 3
    assert config.storage.path is None


def test_sections_override_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
provider:
  name: lm_studio
  lm_studio:
    model: llama-3.2-3b
defaults:
  max_tool_iterations: 4
  discussion_mode: moderated
agents:
  historian:
    name: Historian
    system_instruction: You know history.
presets:
  history:
    name: History Desk
    participant_ids: [historian]
    discussion_mode: turn_based
commands:
  recap:
    description: Recap the chat
    definition: Summarize the discussion.
"""
    )

    config = load_config(str(path))

    assert config.provider.name == "lm_studio"
    assert config.provider.lm_studio.model == "llama-3.2-3b"
    assert config.defaults.max_tool_iterations == 4
    assert config.defaults.discussion_mode == DiscussionMode.MODERATED
    assert [(a.id, a.name) for a in config.agents] == [("historian", "Historian")]
    assert config.presets["history"].discussion_mode == DiscussionMode.TURN_BASED
    assert config.commands[0].name == "recap"
    assert config.commands[0].is_custom


def test_shipped_config_loads() -> None:
    config = load_config(str(REPO_CONFIG))

    assert config.commands[0].name == "summarize"
    assert config.defaults.discussion_mode == DiscussionMode.CONCURRENT
    assert config.storage.path is None
