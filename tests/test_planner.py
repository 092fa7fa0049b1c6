"""
Tests for the reconciliation planner — plans per condition and choice.
"""

import pytest

from provisioner.core.errors import UserCancelled
from provisioner.core.models.plan import Choice, ReconciliationPlan
from provisioner.core.models.state import Condition
from provisioner.core.services.planner import (
    MENU_TEXT,
    ScriptedOperator,
    ask_choice,
    build_plan,
    decide,
    phrase_matches,
)


@pytest.fixture
def partial_state(intact_state):
    return intact_state.model_copy(update={
        "components": {"deps": True, "core": False},
        "config_blocks": {"DEMO_ROOT@~/.bashrc": False},
        "shell_config_markers": {"/home/u/.bashrc": False},
    })


# ── build_plan ───────────────────────────────────────────────────────


class TestFreshPlan:
    def test_installs_everything(self, recipe, fresh_state):
        plan = build_plan(recipe, fresh_state)
        assert plan.condition == Condition.FRESH
        assert plan.choice is None
        assert plan.kinds == ["install", "install", "configure_env", "verify"]
        assert [s.component.name for s in plan.steps[:2]] == ["deps", "core"]

    def test_configure_targets_expanded_file(self, recipe, fresh_state, home):
        plan = build_plan(recipe, fresh_state)
        configure = plan.steps[2]
        assert configure.file == str(home / ".bashrc")
        assert configure.block.marker == "DEMO_ROOT"

    def test_no_purge_no_prompt_needed(self, recipe, fresh_state):
        plan = build_plan(recipe, fresh_state, choice=Choice.PURGE_REINSTALL)
        assert "purge" not in plan.kinds


class TestDetectedPlan:
    def test_choice_required(self, recipe, intact_state):
        with pytest.raises(ValueError, match="choice is required"):
            build_plan(recipe, intact_state)

    def test_keep_is_verify_only(self, recipe, intact_state):
        plan = build_plan(recipe, intact_state, Choice.KEEP_EXIT)
        assert plan.kinds == ["verify"]
        assert plan.mutating_steps == 0

    def test_cancel_returns_none(self, recipe, intact_state):
        assert build_plan(recipe, intact_state, Choice.CANCEL) is None

    def test_repair_intact_changes_nothing(self, recipe, intact_state):
        plan = build_plan(recipe, intact_state, Choice.REPAIR_UPDATE)
        assert plan.kinds == ["verify"]

    def test_repair_fills_gaps_only(self, recipe, partial_state):
        assert partial_state.condition == Condition.DETECTED_PARTIAL
        plan = build_plan(recipe, partial_state, Choice.REPAIR_UPDATE)
        assert plan.kinds == ["install", "configure_env", "verify"]
        assert plan.steps[0].component.name == "core"
        assert "purge" not in plan.kinds

    def test_reinstall_wrong_phrase(self, recipe, intact_state):
        assert build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "confirm") is None
        assert build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, None) is None

    def test_reinstall_order(self, recipe, intact_state):
        plan = build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "  CONFIRM\n")
        assert plan.kinds == ["backup", "purge", "install", "install", "configure_env", "verify"]
        assert plan.steps[0].file == "/home/u/.bashrc"
        assert max(plan.indices_of("purge")) < min(plan.indices_of("install"))

    def test_reinstall_purge_targets(self, recipe, intact_state):
        plan = build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "CONFIRM")
        purge = plan.steps[plan.indices_of("purge")[0]]
        assert [(t.kind, t.value) for t in purge.targets] == [
            ("system_package", "demo"),
            ("path", "~/.demo"),
            ("profile_block", "DEMO_ROOT"),
        ]
        assert purge.targets[-1].file == "/home/u/.bashrc"
        assert purge.targets[0].sudo

    def test_custom_phrase(self, recipe, intact_state):
        assert build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "CONFIRM", confirmation_phrase="WIPE") is None
        assert build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "WIPE", confirmation_phrase="WIPE")


class TestPlanValidation:
    def test_purge_after_install_rejected(self, recipe, intact_state):
        plan = build_plan(recipe, intact_state, Choice.PURGE_REINSTALL, "CONFIRM")
        steps = list(plan.steps)
        steps.insert(len(steps) - 1, steps[1])
        with pytest.raises(ValueError, match="Purge step must precede"):
            ReconciliationPlan(package_name="demo", condition=plan.condition, steps=steps)

    def test_to_dict(self, recipe, intact_state):
        data = build_plan(recipe, intact_state, Choice.KEEP_EXIT).to_dict()
        assert data == {
            "package": "demo",
            "condition": "detected_intact",
            "choice": "keep",
            "steps": [{"kind": "verify", "name": "verify postconditions"}],
        }


class TestPhrase:
    @pytest.mark.parametrize("answer, ok", [
        ("CONFIRM", True),
        ("  CONFIRM  ", True),
        ("confirm", False),
        ("CONFIRMED", False),
        ("", False),
        (None, False),
    ])
    def test_phrase_matches(self, answer, ok):
        assert phrase_matches(answer, "CONFIRM") is ok


# ── Interactive driver ───────────────────────────────────────────────


class TestAskChoice:
    def test_menu_keys(self):
        assert [c.menu_key for c in Choice] == ["1", "2", "3", "4"]

    def test_reprompts_on_invalid(self):
        op = ScriptedOperator(selections=["9", "", "keep", " 2 "])
        assert ask_choice(op) == Choice.REPAIR_UPDATE
        assert op.prompts == ["menu"] * 4
        assert len(op.messages) == 3
        assert op.messages[0] == "Invalid option '9'. Please choose 1-4."

    def test_runs_out_of_answers(self):
        with pytest.raises(UserCancelled, match="no menu selection"):
            ask_choice(ScriptedOperator(selections=["x"]))

    def test_menu_text_lists_options(self):
        for key in "1234":
            assert f"  {key})" in MENU_TEXT


class TestDecide:
    def test_fresh_never_prompts(self, recipe, fresh_state):
        op = ScriptedOperator()
        plan = decide(recipe, fresh_state, op)
        assert op.prompts == []
        assert plan.kinds[0] == "install"

    def test_cancel_after_invalid_input(self, recipe, intact_state):
        op = ScriptedOperator(selections=["9", "", "4"])
        with pytest.raises(UserCancelled):
            decide(recipe, intact_state, op)
        assert op.prompts == ["menu", "menu", "menu"]

    def test_keep(self, recipe, intact_state):
        plan = decide(recipe, intact_state, ScriptedOperator(selections=["1"]))
        assert plan.choice == Choice.KEEP_EXIT

    def test_reinstall_asks_phrase(self, recipe, intact_state):
        op = ScriptedOperator(selections=["3"], phrase="CONFIRM")
        plan = decide(recipe, intact_state, op)
        assert op.prompts == ["menu", "phrase"]
        assert "purge" in plan.kinds

    def test_reinstall_wrong_phrase_cancels(self, recipe, intact_state):
        op = ScriptedOperator(selections=["3"], phrase="confirm")
        with pytest.raises(UserCancelled, match="confirmation phrase did not match"):
            decide(recipe, intact_state, op)

    def test_repair_never_asks_phrase(self, recipe, partial_state):
        op = ScriptedOperator(selections=["2"])
        decide(recipe, partial_state, op)
        assert "phrase" not in op.prompts
