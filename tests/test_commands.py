from parley.commands import CUSTOM_COMMANDS_KEY, DEFAULT_COMMANDS, CommandRegistry
from parley.models import Command
from parley.store import StateStore


def test_builtins_come_first() -> None:
    registry = CommandRegistry([Command(name="recap", definition="Summarize.")])

    assert [c.name for c in registry.get_commands()] == ["search", "create", "recap"]
    assert all(not c.is_custom for c in DEFAULT_COMMANDS)


def test_create_command_registers_custom_command() -> None:
    registry = CommandRegistry()

    assert registry.create_command("recap", "Recap the chat", "Summarize the discussion.", "<topic>")

    command = registry.get_command("recap")
    assert command.is_custom
    assert command.params == "<topic>"
    assert command.definition == "Summarize the discussion."


def test_name_collision_alerts_and_is_rejected() -> None:
    alerts = []
    registry = CommandRegistry(alert=alerts.append)

    assert registry.create_command("search", "Another search", "Do something else.") is False
    assert alerts == ['Command "/search" already exists.']
    assert registry.get_command("search").definition == DEFAULT_COMMANDS[0].definition


def test_missing_data_is_rejected_without_alert() -> None:
    alerts = []
    registry = CommandRegistry(alert=alerts.append)

    assert registry.create_command("", "desc", "def") is False
    assert registry.create_command("recap", "", "def") is False
    assert registry.create_command("recap", "desc", "") is False
    assert alerts == []
    assert registry.get_command("recap") is None


def test_earlier_snapshots_do_not_change() -> None:
    registry = CommandRegistry()
    snapshot = registry.get_commands()

    registry.add_command(Command(name="recap", definition="Summarize."))

    assert len(snapshot) == 2
    assert len(registry.get_commands()) == 3


def test_custom_commands_are_persisted(tmp_path) -> None:
    store = StateStore(tmp_path / "state.db")
    CommandRegistry(store=store).create_command("recap", "Recap", "Summarize.")

    assert store.load(CUSTOM_COMMANDS_KEY)[0]["name"] == "recap"
    assert CommandRegistry(store=store).get_command("recap").is_custom
    store.close()
