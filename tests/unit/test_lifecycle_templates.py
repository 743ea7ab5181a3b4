"""Unit tests for the wizard's automation template catalogue."""

import pytest

from src.exceptions import NotFoundError
from src.lifecycle.templates import TEMPLATES, get_template, is_known_template, list_templates


class TestCatalogue:
    def test_ids_are_unique(self):
        ids = [t.id for t in TEMPLATES]
        assert len(ids) == len(set(ids))

    def test_every_template_has_trigger_and_action(self):
        for template in TEMPLATES:
            assert template.triggers, template.id
            assert template.actions, template.id

    def test_filter_by_category(self):
        templates = list_templates("convenience")
        assert {t.id for t in templates} == {"motion-light", "morning-routine"}

    def test_unknown_category_is_empty(self):
        assert list_templates("gardening") == []

    def test_get_template(self):
        template = get_template("security-alert")
        assert template.category == "security"
        assert template.to_dict()["tags"] == ["security", "motion", "alerts"]

    def test_get_unknown_template(self):
        with pytest.raises(NotFoundError):
            get_template("missing")
        assert is_known_template("missing") is False
        assert is_known_template("motion-light") is True
