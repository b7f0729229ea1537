"""Unit tests for the template engine.

Tests the TemplateEngine for:
- Variable substitution and placeholders for missing values
- Dotted paths into nested data
- HTML escaping
- Required variable validation
- Variable extraction
- SMS segment and character counting
"""

import pytest

from notifier.domain.models import NotificationChannel, Template, TemplateVariable
from notifier.notifications.models import NotificationTemplateError
from notifier.notifications.templates import TemplateEngine, calculate_segment_count


@pytest.fixture
def engine():
    return TemplateEngine()


class TestRender:
    """Tests for rendering template strings."""

    def test_substitutes_values(self, engine):
        result = engine.render(
            "Hi {{ customer_name }}, {{ pet_name }} is booked.",
            {"customer_name": "John Doe", "pet_name": "Buddy"},
        )

        assert result == "Hi John Doe, Buddy is booked."

    def test_missing_value_renders_placeholder(self, engine):
        """Test partial data never raises."""
        result = engine.render("Hi {{ customer_name }}, see {{ pet_name }}!", {"customer_name": "Jo"})

        assert result == "Hi Jo, see [pet_name]!"

    def test_none_value_renders_placeholder(self, engine):
        assert engine.render("{{ pet_name }}", {"pet_name": None}) == "[pet_name]"

    def test_every_occurrence_is_replaced(self, engine):
        assert engine.render("{{ x }} and {{ x }}", {"x": "y"}) == "y and y"

    def test_marker_without_spaces(self, engine):
        assert engine.render("Hi {{customer_name}}!", {"customer_name": "Ann"}) == "Hi Ann!"

    def test_nested_paths(self, engine):
        """Test dotted markers read nested mappings."""
        data = {"customer": {"first": "Ann", "address": {"city": "La Mirada"}}}

        result = engine.render(
            "{{ customer.first }} in {{ customer.address.city }} ({{ customer.last }})", data
        )

        assert result == "Ann in La Mirada ([customer.last])"

    def test_missing_nested_root_keeps_full_path(self, engine):
        assert engine.render("{{ customer.first }}", {}) == "[customer.first]"

    def test_rendering_is_idempotent(self, engine):
        template = "{{ a }}-{{ b }}-{{ c.d }}"
        data = {"a": "1", "c": {"d": "2"}}

        assert engine.render(template, data) == engine.render(template, data)

    def test_business_context_is_exposed(self, engine):
        result = engine.render("{{ business.name }} {{ business.phone }}", {}, {
            "name": "Puppy Day",
            "phone": "(657) 252-2903",
        })

        assert result == "Puppy Day (657) 252-2903"

    def test_data_overrides_business_context(self, engine):
        result = engine.render(
            "{{ business.name }}", {"business": {"name": "Other"}}, {"name": "Puppy Day"}
        )

        assert result == "Other"

    def test_html_escapes_values(self, engine):
        result = engine.render("<p>{{ note }}</p>", {"note": "<b>hi</b>"}, html=True)

        assert result == "<p>&lt;b&gt;hi&lt;/b&gt;</p>"

    def test_text_does_not_escape(self, engine):
        assert engine.render("{{ note }}", {"note": "a & b"}) == "a & b"

    def test_malformed_template_raises(self, engine):
        with pytest.raises(NotificationTemplateError, match="Template rendering failed"):
            engine.render("{% if %}", {})

    def test_sandbox_hides_unsafe_attributes(self, engine):
        assert "class" not in engine.render("{{ x.__class__ }}", {"x": "y"}).replace(
            "[__class__]", ""
        )

    def test_sandbox_blocks_unsafe_calls(self, engine):
        with pytest.raises(NotificationTemplateError):
            engine.render("{{ x.__class__.__subclasses__() }}", {"x": "y"})


class TestRenderContent:
    """Tests for rendering stored templates."""

    def test_renders_all_parts(self, engine):
        template = Template(
            id="t1",
            name="Booking",
            type="booking_confirmation",
            channel=NotificationChannel.EMAIL,
            subject_template="Booked:\n{{ pet_name }}",
            html_template="<p>{{ pet_name }}</p>",
            text_template="{{ pet_name }} is booked",
        )

        content = engine.render_content(template, {"pet_name": "Buddy"})

        assert content.subject == "Booked: Buddy"
        assert content.html == "<p>Buddy</p>"
        assert content.text == "Buddy is booked"
        assert content.character_count == len("Buddy is booked")
        assert content.segment_count == 1
        assert content.warnings == []

    def test_default_values_fill_missing_data(self, engine):
        template = Template(
            id="t2",
            name="Retention",
            type="retention_reminder",
            channel=NotificationChannel.SMS,
            text_template="{{ breed_name }} {{ pet_name }}",
            variables=[
                TemplateVariable(name="breed_name", default_value="dog"),
                TemplateVariable(name="pet_name", required=True),
            ],
        )

        assert engine.render_content(template, {"pet_name": "Rex"}).text == "dog Rex"
        assert engine.render_content(
            template, {"pet_name": "Rex", "breed_name": "Poodle"}
        ).text == "Poodle Rex"

    def test_long_sms_warns(self, engine):
        template = Template(
            id="t3", name="Long", type="x", channel=NotificationChannel.SMS, text_template="a" * 200
        )

        content = engine.render_content(template)

        assert content.segment_count == 2
        assert content.warnings == ["Message is 200 characters (2 SMS segments)"]


class TestValidate:
    """Tests for template validation."""

    def test_missing_required_variable_is_reported(self, engine):
        """Test a template lacking a required marker is invalid."""
        result = engine.validate(
            "Hi {{customer_name}}!",
            [
                TemplateVariable(name="customer_name", required=True),
                TemplateVariable(name="pet_name", required=True),
            ],
        )

        assert result.valid is False
        assert result.errors == ["Required variable 'pet_name' is missing from template"]

    def test_valid_template(self, engine):
        result = engine.validate(
            "{{ customer_name }} / {{ pet_name }}",
            [
                TemplateVariable(name="customer_name", required=True),
                TemplateVariable(name="pet_name", required=False),
            ],
        )

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_optional_variable_may_be_absent(self, engine):
        result = engine.validate("Hello", [TemplateVariable(name="pet_name")])

        assert result.valid is True

    def test_dotted_marker_satisfies_required_root(self, engine):
        result = engine.validate(
            "{{ customer.first }}", [TemplateVariable(name="customer", required=True)]
        )

        assert result.valid is True

    def test_undeclared_marker_warns(self, engine):
        result = engine.validate(
            "{{ pet_name }} {{ surprise }} {{ business.name }}",
            [TemplateVariable(name="pet_name", required=True)],
        )

        assert result.valid is True
        assert result.warnings == [
            "Variable 'surprise' is not defined in template variables list"
        ]

    def test_syntax_error_is_invalid(self, engine):
        result = engine.validate("{{ pet_name ", [])

        assert result.valid is False
        assert "Template syntax error" in result.errors[0]

    def test_literal_block_opener_is_reported(self, engine):
        result = engine.validate("Use code {% SAVE10 %} for {{ pet_name }}", [])

        assert result.valid is False
        assert "Template syntax error" in result.errors[0]
        assert "{% raw %}" in result.errors[0]

    def test_comment_warns_it_is_dropped(self, engine):
        result = engine.validate(
            "{{ pet_name }} is booked {# with our #1 groomer #}",
            [TemplateVariable(name="pet_name", required=True)],
        )

        assert result.valid is True
        assert result.warnings == [
            "Template contains a '{# ... #}' comment, which is removed when rendered"
        ]

    def test_escaped_block_opener_renders_literally(self, engine):
        assert engine.render("Use code {{ '{%' }} SAVE10") == "Use code {% SAVE10"


class TestExtractVariables:
    def test_extracts_roots_and_paths(self, engine):
        variables = engine.extract_variables(
            "{{ a }} {{ b.c.d }} {% for item in items %}{{ item.name }}{% endfor %}"
        )

        assert variables == {"a", "b.c.d", "items"}

    def test_set_targets_are_excluded(self, engine):
        assert engine.extract_variables("{% set x = 1 %}{{ x }}{{ y }}") == {"y"}


class TestCounting:
    """Tests for SMS segment and character counting."""

    @pytest.mark.parametrize(
        "length,expected",
        [(0, 0), (1, 1), (160, 1), (161, 2), (306, 2), (307, 3)],
    )
    def test_segment_count(self, length, expected):
        assert calculate_segment_count("x" * length) == expected

    def test_character_count_uses_max_length(self, engine):
        count = engine.calculate_character_count(
            "Hi {{ pet_name }}!", [TemplateVariable(name="pet_name", max_length=30)]
        )

        assert count == len("Hi !") + 30

    def test_character_count_without_max_length_uses_marker(self, engine):
        template = "Hi {{ pet_name }}!"

        assert engine.calculate_character_count(template, []) == len(template)

    def test_character_count_shortens_long_urls(self, engine):
        url = "https://thepuppyday.com/book/appointments/new?source=sms"
        template = f"Book: {url}"

        assert engine.calculate_character_count(template, []) == len("Book: ") + 23
