import json
import base64
from typing import Any, Callable, Dict, Optional
from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError as JinjaTemplateError, UndefinedError

from gqltask.core.common import DateTimeEncoder
from gqltask.core.errors import TemplateError

RenderFn = Callable[[Any], Any]

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off"}


def add_filters(env: Environment) -> Environment:
    """
    Register the b64encode and tojson filters on a Jinja2 environment.
    """
    if 'b64encode' not in env.filters:
        env.filters['b64encode'] = lambda s: base64.b64encode(
            (s if isinstance(s, str) else str(s)).encode('utf-8')
        ).decode('utf-8')
    env.filters['tojson'] = lambda obj: json.dumps(obj, cls=DateTimeEncoder, ensure_ascii=False)
    return env


def create_environment() -> Environment:
    """Jinja2 environment used for task templates. Undefined variables raise."""
    return add_filters(Environment(loader=BaseLoader(), undefined=StrictUndefined))


def _has_template_markers(template: str) -> bool:
    return ('{{' in template and '}}' in template) or ('{%' in template and '%}' in template)


def _lookup_simple_expression(template: str, context: Dict[str, Any]):
    """
    Resolve '{{ name }}' or '{{ a.b.c }}' straight from the context so the
    value keeps its native type (int, list, dict) instead of becoming a string.
    Returns (found, value).
    """
    expr = template.strip()
    if not (expr.startswith('{{') and expr.endswith('}}')) or expr.count('{{') != 1:
        return False, None
    var_path = expr[2:-2].strip()
    if not var_path or any(op in var_path for op in ['==', '!=', '<', '>', '+', '-', '*', '/', '|', '(', '[', ' ', '~', '"', "'"]):
        return False, None
    value: Any = context
    for part in var_path.split('.'):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return False, None
    return True, value


def render_template(env: Environment, template: Any, context: Dict) -> Any:
    """
    Render a template value against a context.

    Strings without template markers are returned unchanged. A string made of a
    single variable reference resolves to the referenced value as is. Dicts
    (keys and values) and lists are rendered recursively; other values pass
    through.

    Args:
        env: The Jinja2 environment
        template: The template to render
        context: The context to use for rendering

    Returns:
        The rendered value

    Raises:
        TemplateError: undefined variable, invalid template, or a dict key that
            renders to an unhashable value
    """
    if isinstance(template, str):
        if not _has_template_markers(template):
            return template

        found, value = _lookup_simple_expression(template, context)
        if found:
            return value

        try:
            return env.from_string(template).render(**context)
        except UndefinedError as e:
            raise TemplateError(f"Unable to render template '{template}': {e}", template=template) from e
        except JinjaTemplateError as e:
            raise TemplateError(f"Invalid template '{template}': {e}", template=template) from e

    if isinstance(template, dict):
        rendered = {}
        for k, v in template.items():
            key = _render_key(env, k, context)
            rendered[key] = render_template(env, v, context)
        return rendered
    if isinstance(template, (list, tuple)):
        return [render_template(env, item, context) for item in template]

    return template


def _render_key(env: Environment, key: Any, context: Dict) -> Any:
    if not isinstance(key, str):
        return key
    rendered = render_template(env, key, context)
    try:
        hash(rendered)
    except TypeError as e:
        raise TemplateError(
            f"Key template '{key}' rendered to {type(rendered).__name__}, which cannot be used as a key",
            template=key,
        ) from e
    return rendered


class Renderer:
    """
    Render function bound to a context: ``render(template) -> value``.
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None, env: Optional[Environment] = None):
        self.context = dict(context or {})
        self.env = add_filters(env) if env is not None else create_environment()

    def __call__(self, template: Any) -> Any:
        return render_template(self.env, template, self.context)


def render_bool(render: RenderFn, template: Any, default: bool = False) -> bool:
    """Render a boolean template ('{{ flag }}', 'true', True, ...)."""
    if template is None:
        return default
    value = render(template)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise TemplateError(f"Expected a boolean, got {value!r} from template {template!r}", template=str(template))
