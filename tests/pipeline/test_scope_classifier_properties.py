"""Tests for prompt classification: scope tier, mode, start phase and slug."""

import re

import pytest
from hypothesis import given, strategies as st

from agent_pipeline.classifier.scope import (
    SLUG_MAX_LENGTH,
    infer_mode,
    infer_scope,
    infer_start_phase,
    slugify,
)
from agent_pipeline.state.models import RunMode, ScopeTier


def _padded(text: str, words: int) -> str:
    """Pad ``text`` with neutral filler up to ``words`` words."""
    filler = ["thing"] * max(0, words - len(text.split()))
    return " ".join([text, *filler])


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


def test_short_prompt_is_nano():
    assert infer_scope("a todo app with auth, api, payments and a database") == ScopeTier.NANO


def test_simple_keyword_extends_nano_to_fifty_words():
    assert infer_scope(_padded("a simple landing page", 45)) == ScopeTier.NANO
    assert infer_scope(_padded("a company site", 45)) == ScopeTier.MICRO


def test_four_signals_is_large():
    prompt = _padded("an api with oauth login, postgres storage, stripe billing and realtime updates", 40)
    assert infer_scope(prompt) == ScopeTier.LARGE


def test_two_signals_is_standard():
    prompt = _padded("a dashboard with search over uploaded files", 40)
    assert infer_scope(prompt) == ScopeTier.STANDARD


def test_long_prompts_scale_up():
    assert infer_scope(_padded("a company site", 60)) == ScopeTier.STANDARD
    assert infer_scope(_padded("a company site", 130)) == ScopeTier.LARGE


@given(st.text(alphabet="abcdefghijklmnopqrstuvwxyz -", max_size=400))
def test_scope_is_case_insensitive(prompt):
    assert infer_scope(prompt.upper()) == infer_scope(prompt)


# ---------------------------------------------------------------------------
# Mode and start phase
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "prompt,expected",
    [
        ("Fix the broken checkout button", RunMode.FIX),
        ("typo on the pricing page", RunMode.FIX),
        ("add a dark mode toggle", RunMode.FEAT),
        ("prefix every title", RunMode.FEAT),
    ],
)
def test_infer_mode(prompt, expected):
    assert infer_mode(prompt) == expected


@pytest.mark.parametrize(
    "prompt,expected",
    [
        ("fix the login crash", 5),
        ("refactor the cart module", 5),
        ("rebrand with a new logo", 3),
        ("implement design from the approved direction", 4),
        ("add a backend endpoint for orders", 2),
        ("a recipe sharing site", 1),
    ],
)
def test_infer_start_phase(prompt, expected):
    assert infer_start_phase(prompt) == expected


def test_start_phase_rules_checked_in_order():
    # code-only keywords win over visual ones
    assert infer_start_phase("fix the logo color") == 5


# ---------------------------------------------------------------------------
# Slug
# ---------------------------------------------------------------------------


def test_slugify_example():
    assert slugify("Add dark mode!") == "add-dark-mode"
    assert slugify("  --Hello,   World--  ") == "hello-world"


@given(st.text(max_size=200))
def test_slug_is_kebab_case_and_bounded(text):
    slug = slugify(text)
    assert len(slug) <= SLUG_MAX_LENGTH
    assert re.fullmatch(r"[a-z0-9-]*", slug)
    assert not slug.startswith("-")
