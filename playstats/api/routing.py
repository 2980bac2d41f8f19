"""Method + path routing with compiled path templates.

A path template is a literal path with ``:name`` placeholders, each matching
one or more word characters, e.g. ``/api/dashboard/top-artists/:type``.
Templates are anchored at both ends unless they end with the ``.*`` wildcard
marker, in which case the pattern is searched anywhere in the path. Wildcard
templates exist for preflight bindings such as ``OPTIONS /api/.*``.

Bindings are kept in registration order and the first compatible binding
wins, so overlapping templates are resolved purely by the order in which
they were registered.
"""

import logging
import re
from typing import Awaitable, Callable, Optional

from attrs import define
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

ALL = "ALL"
METHODS = frozenset({"GET", "POST", "OPTIONS", ALL})

WILDCARD = ".*"
PLACEHOLDER = re.compile(r":(\w*)")


class InvalidTemplateError(ValueError):
    """A path template cannot be compiled."""

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid path template {template!r}: {reason}")


@define(frozen=True)
class CompiledPattern:
    """Matcher compiled from a path template."""

    template: str
    regex: re.Pattern
    names: tuple[str, ...]
    wildcard: bool = False

    def match(self, path: str) -> Optional[dict[str, str]]:
        """Return captured parameters for `path`, or None if it does not match.

        Values are returned as strings, no type coercion is performed.
        """
        if self.wildcard:
            m = self.regex.search(path)
        else:
            m = self.regex.fullmatch(path)

        if m is None:
            return None

        return m.groupdict()


def compile_template(template: str) -> CompiledPattern:
    """Compile a path template.

    Raises:
        InvalidTemplateError: if the template is malformed or reuses a
            placeholder name.
    """
    if not template.startswith("/"):
        raise InvalidTemplateError(template, "must start with '/'")

    wildcard = WILDCARD in template
    body = template
    if wildcard:
        if template.count(WILDCARD) > 1:
            raise InvalidTemplateError(template, "only one '.*' wildcard is allowed")
        if not template.endswith(WILDCARD):
            raise InvalidTemplateError(template, "'.*' must end the template")
        body = template[: -len(WILDCARD)]

    if "*" in body:
        raise InvalidTemplateError(template, "'*' is only allowed in a trailing '.*'")

    parts: list[str] = []
    names: list[str] = []
    position = 0
    for placeholder in PLACEHOLDER.finditer(body):
        name = placeholder.group(1)
        if not name.isidentifier():
            raise InvalidTemplateError(
                template, f"invalid placeholder {placeholder.group(0)!r}"
            )
        if name in names:
            raise InvalidTemplateError(template, f"duplicate placeholder ':{name}'")

        names.append(name)
        parts.append(re.escape(body[position : placeholder.start()]))
        parts.append(rf"(?P<{name}>\w+)")
        position = placeholder.end()

    parts.append(re.escape(body[position:]))
    if wildcard:
        parts.append(WILDCARD)

    return CompiledPattern(
        template=template,
        regex=re.compile("".join(parts)),
        names=tuple(names),
        wildcard=wildcard,
    )


@define(frozen=True)
class RouteBinding:
    """A registered (method, pattern, handler) triple."""

    method: str
    pattern: CompiledPattern
    handler: Handler

    def accepts(self, method: str) -> bool:
        """Whether this binding applies to requests using `method`."""
        return self.method == ALL or self.method == method


@define(frozen=True)
class RouteMatch:
    """Result of a successful route lookup."""

    binding: RouteBinding
    params: dict[str, str]

    @property
    def handler(self) -> Handler:
        """Handler of the matched binding."""
        return self.binding.handler


class Router:
    """Ordered collection of route bindings, first match wins.

    Duplicate and overlapping templates are allowed. Once frozen, the
    binding list is read-only and safe to share between concurrent requests.
    """

    def __init__(self):
        """Initialize an empty router."""
        self._bindings: list[RouteBinding] = []
        self._frozen = False

    @property
    def bindings(self) -> tuple[RouteBinding, ...]:
        """Registered bindings in registration order."""
        return tuple(self._bindings)

    @property
    def frozen(self) -> bool:
        """Whether registration is closed."""
        return self._frozen

    def freeze(self) -> None:
        """Close registration."""
        self._frozen = True

    def register(self, method: str, template: str, handler: Handler) -> RouteBinding:
        """Compile `template` and append a binding for `method`.

        Raises:
            ValueError: on an unsupported method
            InvalidTemplateError: on a malformed template
            RuntimeError: if the router is frozen
        """
        if self._frozen:
            raise RuntimeError("Router is frozen, routes can no longer be registered")

        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported method {method!r}")

        binding = RouteBinding(
            method=method, pattern=compile_template(template), handler=handler
        )
        self._bindings.append(binding)
        logger.debug(f"Registered route {method} {template}")
        return binding

    def get(self, template: str, handler: Optional[Handler] = None):
        """Register a GET route, directly or as a decorator."""
        return self._route("GET", template, handler)

    def post(self, template: str, handler: Optional[Handler] = None):
        """Register a POST route, directly or as a decorator."""
        return self._route("POST", template, handler)

    def options(self, template: str, handler: Optional[Handler] = None):
        """Register an OPTIONS route, directly or as a decorator."""
        return self._route("OPTIONS", template, handler)

    def all(self, template: str, handler: Optional[Handler] = None):
        """Register a route matching any method, directly or as a decorator."""
        return self._route(ALL, template, handler)

    def _route(self, method: str, template: str, handler: Optional[Handler]):
        if handler is not None:
            self.register(method, template, handler)
            return handler

        def decorator(func: Handler) -> Handler:
            self.register(method, template, func)
            return func

        return decorator

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Find the first binding accepting `method` whose pattern matches `path`."""
        for binding in self._bindings:
            if not binding.accepts(method):
                continue

            params = binding.pattern.match(path)
            if params is not None:
                return RouteMatch(binding=binding, params=params)

        return None
