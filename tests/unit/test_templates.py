"""Tests for the built-in template registry and template parsing."""

import pytest

from guild_templater.exceptions import TemplateLoadError, TemplateNotFoundError
from guild_templater.services.templates import (
    BUILTIN_TEMPLATE_IDS,
    get_template,
    list_templates,
    load_template_file,
    normalize_color,
    normalize_template_id,
    parse_channel,
    parse_permission_overrides,
    parse_role,
    parse_template,
    template_summary,
)
from guild_templater.services.rest_backend import PERMISSION_BITS
from guild_templater.types import ChannelKind, PermissionOverride, ServerTemplate


class TestBuiltinTemplates:
    @pytest.mark.parametrize("template_id", BUILTIN_TEMPLATE_IDS)
    def test_every_builtin_loads(self, template_id):
        template = get_template(template_id)

        assert isinstance(template, ServerTemplate)
        assert template.id == template_id
        assert template.roles
        assert template.categories

    @pytest.mark.parametrize("template_id", BUILTIN_TEMPLATE_IDS)
    def test_names_unique_within_template(self, template_id):
        template = get_template(template_id)

        role_names = [r.name for r in template.roles]
        category_names = [c.name for c in template.categories]
        assert len(role_names) == len(set(role_names))
        assert len(category_names) == len(set(category_names))

    def test_gaming_counts(self):
        summary = template_summary(get_template("gaming"))

        assert summary["role_count"] == 10
        assert summary["category_count"] == 10
        assert summary["channel_count"] == 44

    @pytest.mark.parametrize(
        "template_id,channels",
        [("community", 28), ("business", 40), ("study_group", 41)],
    )
    def test_channel_counts(self, template_id, channels):
        assert get_template(template_id).channel_count == channels

    def test_lookup_is_cached(self):
        assert get_template("gaming") is get_template("GAMING")

    def test_hyphenated_id(self):
        assert get_template("study-group").id == "study_group"

    def test_unknown_template(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            get_template("pirates")

        assert exc_info.value.template_id == "pirates"
        assert "gaming" in str(exc_info.value)

    def test_list_templates_order(self):
        assert [t.id for t in list_templates()] == list(BUILTIN_TEMPLATE_IDS)

    @pytest.mark.parametrize("template_id", BUILTIN_TEMPLATE_IDS)
    def test_overrides_name_known_roles_and_permissions(self, template_id):
        template = get_template(template_id)
        role_names = {role.name for role in template.roles} | {"@everyone"}

        overrides = [o for c in template.categories for o in c.permission_overrides]
        overrides += [
            o for c in template.categories for ch in c.channels for o in ch.permission_overrides
        ]
        for override in overrides:
            assert override.role in role_names
            assert set(override.allow + override.deny) <= set(PERMISSION_BITS)

    def test_business_announcements_are_read_only(self):
        announcements = get_template("business").categories[0]
        company_news = announcements.channels[0]

        assert company_news.name == "company-news"
        assert company_news.permission_overrides == (
            PermissionOverride(
                role="@everyone",
                allow=("VIEW_CHANNEL", "READ_MESSAGE_HISTORY"),
                deny=("SEND_MESSAGES",),
            ),
            PermissionOverride(role="Executive", allow=("SEND_MESSAGES",)),
        )
        assert announcements.permission_overrides[1] == PermissionOverride(
            role="Guest", deny=("VIEW_CHANNEL",)
        )

    @pytest.mark.parametrize(
        "template_id,categories,channels",
        [("gaming", 2, 7), ("business", 4, 8), ("study_group", 2, 5), ("community", 2, 6)],
    )
    def test_override_counts(self, template_id, categories, channels):
        template = get_template(template_id)

        assert sum(bool(c.permission_overrides) for c in template.categories) == categories
        assert (
            sum(bool(ch.permission_overrides) for c in template.categories for ch in c.channels)
            == channels
        )


class TestParsing:
    def test_parse_template(self, sample_template_data):
        template = parse_template(sample_template_data)

        assert template.id == "sample"
        assert template.use_case == "Testing"
        assert template.roles[1].permissions == ("ADMINISTRATOR",)
        assert template.roles[1].hoist is True
        general = template.categories[0]
        assert [ch.kind for ch in general.channels] == [
            ChannelKind.TEXT,
            ChannelKind.VOICE,
        ]
        assert template.categories[1].channels[0].slowmode == 60

    def test_template_channels_ignore_category_key(self):
        channel = parse_channel({"name": "x", "category": "Other"})
        assert channel.category is None

    def test_additional_channel_keeps_category(self):
        channel = parse_channel({"name": "x", "category": "Other"}, allow_category=True)
        assert channel.category == "Other"

    @pytest.mark.parametrize("slowmode", [-1, 21601])
    def test_slowmode_bounds(self, slowmode):
        with pytest.raises(TemplateLoadError):
            parse_channel({"name": "x", "slowmode": slowmode})

    def test_slowmode_upper_bound_allowed(self):
        assert parse_channel({"name": "x", "slowmode": 21600}).slowmode == 21600

    def test_voice_settings(self):
        channel = parse_channel(
            {"name": "Lounge", "type": "voice", "bitrate": 96000, "user_limit": 10}
        )

        assert channel.bitrate == 96000
        assert channel.user_limit == 10
        assert parse_channel({"name": "x"}).bitrate is None

    @pytest.mark.parametrize(
        "data",
        [{"bitrate": 7999}, {"bitrate": 384001}, {"user_limit": 100}, {"user_limit": "many"}],
    )
    def test_voice_settings_bounds(self, data):
        with pytest.raises(TemplateLoadError):
            parse_channel({"name": "x", "type": "voice", **data})

    def test_permission_overrides(self):
        overrides = parse_permission_overrides(
            [{"role": "Member", "deny": ["send_messages"]}], "rules"
        )

        assert overrides == (PermissionOverride(role="Member", deny=("SEND_MESSAGES",)),)

    @pytest.mark.parametrize(
        "data",
        ["Member", [{"allow": ["VIEW_CHANNEL"]}], [{"role": "Member", "allow": "VIEW_CHANNEL"}]],
    )
    def test_permission_overrides_rejects(self, data):
        with pytest.raises(TemplateLoadError):
            parse_permission_overrides(data, "rules")

    def test_unknown_channel_type(self):
        with pytest.raises(TemplateLoadError, match="hologram"):
            parse_channel({"name": "x", "type": "hologram"})

    @pytest.mark.parametrize("data", [None, "just a string", {"name": ""}, {}])
    def test_role_needs_name(self, data):
        with pytest.raises(TemplateLoadError):
            parse_role(data)

    def test_role_defaults(self):
        role = parse_role({"name": "Member"})
        assert role.color == "#99AAB5"
        assert role.position == 0
        assert role.permissions == ()

    def test_template_needs_id(self, sample_template_data):
        del sample_template_data["id"]
        with pytest.raises(TemplateLoadError):
            parse_template(sample_template_data)

    def test_template_must_be_mapping(self):
        with pytest.raises(TemplateLoadError):
            parse_template(["a", "b"])


class TestHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [("#abcdef", "#ABCDEF"), ("abcdef", "#ABCDEF"), (" #00FF00 ", "#00FF00")],
    )
    def test_normalize_color(self, value, expected):
        assert normalize_color(value) == expected

    @pytest.mark.parametrize("value", ["#abc", "red", "#GGGGGG", None])
    def test_normalize_color_rejects(self, value):
        with pytest.raises(TemplateLoadError):
            normalize_color(value)

    def test_normalize_template_id(self):
        assert normalize_template_id(" Study-Group ") == "study_group"


class TestLoadTemplateFile:
    def test_loads_yaml(self, template_file):
        template = load_template_file(template_file)
        assert template.id == "sample"

    def test_missing_file(self, tmp_path):
        with pytest.raises(TemplateLoadError):
            load_template_file(tmp_path / "missing.yaml")

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("roles: [unclosed")

        with pytest.raises(TemplateLoadError):
            load_template_file(path)
