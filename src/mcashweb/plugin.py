"""
Plugin registration through explicit extension points.

Components (``Mcash``, ``TransactionBuilder``, ``EventServer``) mark the
methods a plugin may replace with ``@extension_point``. A plugin is a class
taking the client and exposing ``plugin_interface(options)``::

    {
        "requires": ">=1.0,<2",           # PEP 440 specifier, optional
        "components": {
            "mcash": {"get_balance": fn},  # fn(component, *args, **kwargs)
        },
    }

Overrides are stored in the component's extension table; nothing is patched
onto live objects.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import Version

from .errors import PluginError
from .version import __version__

if TYPE_CHECKING:
    from .client import McashWeb

logger = logging.getLogger(__name__)

PLUGIN_NO_OVERRIDE = frozenset({"register"})


def extension_point(func: Callable[..., Any]) -> Callable[..., Any]:
    """Allow plugins to replace ``func`` on a component instance."""
    name = func.__name__

    @functools.wraps(func)
    def wrapper(self: "Component", *args: Any, **kwargs: Any) -> Any:
        override = self._extensions.get(name)
        if override is not None:
            return override(self, *args, **kwargs)
        return func(self, *args, **kwargs)

    wrapper.__extension_point__ = True  # type: ignore[attr-defined]
    return wrapper


class Component:
    """Base for objects whose methods plugins may override."""

    def __init__(self) -> None:
        self._extensions: dict[str, Callable[..., Any]] = {}

    @classmethod
    def extension_points(cls) -> frozenset[str]:
        return frozenset(
            name
            for name in dir(cls)
            if getattr(getattr(cls, name, None), "__extension_point__", False)
        )

    def extend(self, name: str, func: Callable[..., Any]) -> None:
        if name not in self.extension_points():
            raise PluginError(f"{type(self).__name__}.{name} is not an extension point")
        self._extensions[name] = func

    def original(self, name: str) -> Callable[..., Any]:
        """The built-in implementation of ``name``, bypassing any override."""
        method = getattr(type(self), name)
        return functools.partial(method.__wrapped__, self)


class Plugin:
    """Plugin registry bound to one client."""

    def __init__(self, client: "McashWeb") -> None:
        self.client = client
        self.plugins: list[Any] = []

    def _component(self, name: str) -> Optional[Component]:
        component = getattr(self.client, name, None)
        return component if isinstance(component, Component) else None

    def register(self, plugin_cls: type, options: Optional[dict[str, Any]] = None) -> dict[str, list[str]]:
        """
        Instantiate ``plugin_cls`` and apply its overrides.

        Returns:
            ``{"plugged": [...], "skipped": [...]}`` method names

        Raises:
            PluginError: If the plugin has no interface or requires another version
        """
        plugin = plugin_cls(self.client)
        if not callable(getattr(plugin, "plugin_interface", None)):
            raise PluginError("The plugin does not expose plugin_interface()")
        interface = plugin.plugin_interface(options or {}) or {}

        requires = interface.get("requires")
        if requires:
            try:
                compatible = Version(__version__) in SpecifierSet(requires)
            except InvalidSpecifier as exc:
                raise PluginError(f"Invalid plugin version requirement: {requires}") from exc
            if not compatible:
                raise PluginError("The plugin is not compatible with this version of McashWeb")

        result: dict[str, list[str]] = {"plugged": [], "skipped": []}
        for component_name, overrides in (interface.get("components") or {}).items():
            component = self._component(component_name)
            for name, func in overrides.items():
                allowed = (
                    component is not None
                    and not name.startswith("_")
                    and name not in PLUGIN_NO_OVERRIDE
                    and name in component.extension_points()
                    and callable(func)
                )
                if not allowed:
                    logger.debug("Skipping plugin override %s.%s", component_name, name)
                    result["skipped"].append(name)
                    continue
                component.extend(name, func)
                result["plugged"].append(name)

        self.plugins.append(plugin)
        return result
