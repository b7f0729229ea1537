"""Template rendering for notifications using Jinja2.

Templates are stored strings with ``{{ variable }}`` markers. They are
evaluated in a sandboxed Jinja2 environment whose undefined type renders a
missing value as the literal ``[name]`` instead of raising, so a template
with incomplete data still produces a deliverable message.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from jinja2 import ChainableUndefined, TemplateError, meta, nodes
from jinja2.sandbox import SandboxedEnvironment

from notifier.domain.models import RenderedContent, Template, TemplateVariable, ValidationResult

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

SMS_SINGLE_SEGMENT_LENGTH = 160
SMS_MULTI_SEGMENT_LENGTH = 153
SHORTENED_URL_LENGTH = 23

BUSINESS_KEY = "business"

_MARKER_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_URL_PATTERN = re.compile(r"https?://\S+")
_BLOCK_OPENER_PATTERN = re.compile(r"\{[%#]")

LITERAL_SYNTAX_HINT = (
    "; '{%' and '{#' start template tags, write them as {{ '{%' }} or inside "
    "{% raw %}...{% endraw %} to keep them literal"
)


def _syntax_hint(template: str) -> str:
    return LITERAL_SYNTAX_HINT if _BLOCK_OPENER_PATTERN.search(template) else ""


def calculate_segment_count(text: str) -> int:
    """Number of SMS segments needed for ``text``."""
    length = len(text)
    if length == 0:
        return 0
    if length <= SMS_SINGLE_SEGMENT_LENGTH:
        return 1
    return math.ceil(length / SMS_MULTI_SEGMENT_LENGTH)


class PlaceholderUndefined(ChainableUndefined):
    """Undefined value that renders as ``[name]`` and tracks dotted paths."""

    __slots__ = ()

    def __str__(self) -> str:
        return f"[{self._undefined_name or 'undefined'}]"

    def __getattr__(self, name: str) -> "PlaceholderUndefined":
        if name.startswith("__"):
            raise AttributeError(name)
        return PlaceholderUndefined(name=f"{self._undefined_name}.{name}")

    def __getitem__(self, key: Any) -> "PlaceholderUndefined":
        return PlaceholderUndefined(name=f"{self._undefined_name}.{key}")


class _PathDict(dict):
    """Dict that remembers its dotted path within the render context."""

    def __init__(self, path: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._placeholder_path = path


def _wrap(value: Any, path: str) -> Any:
    if isinstance(value, Mapping):
        return _PathDict(
            path,
            {
                key: _wrap(item, f"{path}.{key}")
                for key, item in value.items()
                if item is not None
            },
        )
    return value


class _PlaceholderEnvironment(SandboxedEnvironment):
    """Sandbox that names a missing key of a known mapping by its full path."""

    def getattr(self, obj: Any, attribute: str) -> Any:
        value = super().getattr(obj, attribute)
        return self._qualify(obj, attribute, value)

    def getitem(self, obj: Any, argument: Any) -> Any:
        value = super().getitem(obj, argument)
        return self._qualify(obj, argument, value)

    def _qualify(self, obj: Any, key: Any, value: Any) -> Any:
        if isinstance(value, PlaceholderUndefined) and isinstance(obj, _PathDict):
            return self.undefined(name=f"{obj._placeholder_path}.{key}")
        return value


class TemplateEngine:
    """Renders and validates notification templates.

    Rendering is pure: the same template and data always produce the same
    output, and a marker without a value never raises.
    """

    def __init__(self):
        options = dict(undefined=PlaceholderUndefined, keep_trailing_newline=True)
        self.text_env = _PlaceholderEnvironment(autoescape=False, **options)
        self.html_env = _PlaceholderEnvironment(autoescape=True, **options)

    def render(
        self,
        template: str,
        data: Optional[Mapping[str, Any]] = None,
        business_context: Optional[Mapping[str, Any]] = None,
        html: bool = False,
    ) -> str:
        """Render a template string.

        Args:
            template: Template source with ``{{ variable }}`` markers
            data: Values for the markers; nested mappings allow dotted paths
                and None counts as missing
            business_context: Exposed as ``business`` unless data defines it
            html: Escape substituted values for HTML output

        Returns:
            Rendered text; missing values appear as ``[name]``

        Raises:
            NotificationTemplateError: If the template itself is malformed
        """
        env = self.html_env if html else self.text_env
        context = self._build_context(data, business_context)

        try:
            return env.from_string(template).render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}{_syntax_hint(template)}"
            logger.error(error_msg)
            raise NotificationTemplateError(error_msg) from e

    def render_content(
        self,
        template: Template,
        data: Optional[Mapping[str, Any]] = None,
        business_context: Optional[Mapping[str, Any]] = None,
    ) -> RenderedContent:
        """Render every part of a stored template.

        Declared variables with a ``default_value`` fill keys absent from
        ``data``. The subject is collapsed to a single line.
        """
        values: Dict[str, Any] = {
            variable.name: variable.default_value
            for variable in template.variables
            if variable.default_value is not None and "." not in variable.name
        }
        values.update(data or {})

        subject = None
        if template.subject_template:
            subject = self.render(template.subject_template, values, business_context)
            subject = subject.strip().replace("\n", " ")

        html = None
        if template.html_template:
            html = self.render(template.html_template, values, business_context, html=True)

        text = self.render(template.text_template, values, business_context)

        character_count = len(text)
        segment_count = self.calculate_segment_count(text)
        warnings = []
        if character_count > SMS_SINGLE_SEGMENT_LENGTH:
            warnings.append(
                f"Message is {character_count} characters ({segment_count} SMS segments)"
            )

        return RenderedContent(
            subject=subject,
            html=html,
            text=text,
            character_count=character_count,
            segment_count=segment_count,
            warnings=warnings,
        )

    def validate(self, template: str, variables: Iterable[TemplateVariable]) -> ValidationResult:
        """Check that every required variable is referenced by the template.

        A required variable counts as present when a marker names it directly
        or a dotted path beneath it. Markers that no declared variable covers
        produce warnings; ``business.*`` is always available. Comments
        (``{# ... #}``) are dropped from the output, so they warn too.
        """
        variables = list(variables)
        errors: List[str] = []
        warnings: List[str] = []

        try:
            markers = self.extract_variables(template)
        except NotificationTemplateError as e:
            return ValidationResult(valid=False, errors=[e.message])

        for variable in variables:
            if not variable.required:
                continue
            found = any(
                marker == variable.name or marker.startswith(f"{variable.name}.")
                for marker in markers
            )
            if not found:
                errors.append(f"Required variable '{variable.name}' is missing from template")

        declared = {variable.name.split(".")[0] for variable in variables}
        for marker in sorted(markers):
            base_name = marker.split(".")[0]
            if base_name == BUSINESS_KEY or base_name in declared:
                continue
            warnings.append(f"Variable '{marker}' is not defined in template variables list")

        if "{#" in template:
            warnings.append("Template contains a '{# ... #}' comment, which is removed when rendered")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def extract_variables(self, template: str) -> Set[str]:
        """Return the variable paths a template reads (``name`` or ``a.b.c``).

        Loop and ``set`` targets are excluded.

        Raises:
            NotificationTemplateError: If the template cannot be parsed
        """
        try:
            ast = self.text_env.parse(template)
        except TemplateError as e:
            raise NotificationTemplateError(
                f"Template syntax error: {e}{_syntax_hint(template)}"
            ) from e

        roots = meta.find_undeclared_variables(ast)
        getattrs = list(ast.find_all(nodes.Getattr))
        inner = {id(node.node) for node in getattrs}

        paths: Set[str] = set()
        covered: Set[str] = set()
        for node in getattrs:
            if id(node) in inner:
                continue
            parts = []
            current = node
            while isinstance(current, nodes.Getattr):
                parts.insert(0, current.attr)
                current = current.node
            if isinstance(current, nodes.Name) and current.name in roots:
                parts.insert(0, current.name)
                paths.add(".".join(parts))
                covered.add(current.name)

        paths.update(root for root in roots if root not in covered)
        return paths

    def calculate_segment_count(self, text: str) -> int:
        """Number of SMS segments needed for ``text``."""
        return calculate_segment_count(text)

    def calculate_character_count(
        self, template: str, variables: Iterable[TemplateVariable]
    ) -> int:
        """Worst-case rendered length of a template.

        Each marker counts at its variable's ``max_length`` (markers without
        one count at their literal length), and each URL longer than
        SHORTENED_URL_LENGTH counts as a shortened link.
        """
        max_lengths = {
            variable.name: variable.max_length
            for variable in variables
            if variable.max_length is not None
        }

        length = len(template)
        for match in _MARKER_PATTERN.finditer(template):
            base_name = match.group(1).strip().split(".")[0]
            if base_name in max_lengths:
                length += max_lengths[base_name] - len(match.group(0))

        for url in _URL_PATTERN.findall(template):
            if len(url) > SHORTENED_URL_LENGTH:
                length -= len(url) - SHORTENED_URL_LENGTH

        return length

    @staticmethod
    def _build_context(
        data: Optional[Mapping[str, Any]],
        business_context: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        context = {
            key: _wrap(value, key)
            for key, value in (data or {}).items()
            if value is not None
        }
        if business_context is not None and BUSINESS_KEY not in context:
            context[BUSINESS_KEY] = _wrap(business_context, BUSINESS_KEY)
        return context
