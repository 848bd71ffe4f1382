"""
Authorization Resources

Anything that can own a permission check: the controller itself, an agent
computer, a job, a view. A resource may hand its decisions to another
resource (an item created by a parent defers to that parent); the
delegation is a property of the resource and the strategy only follows it.
"""

from typing import Optional

from ..errors import ConfigurationError, UnknownResource

ROOT_URL = ""


class Resource:
    """
    Base class for addressable objects.

    Subclasses set ``url`` (used as the grant scope key) and may override
    ``authorization_delegate``.
    """

    url: str = ROOT_URL
    display_name: str = ""

    @property
    def authorization_delegate(self) -> Optional["Resource"]:
        """Resource that owns authorization for this one, or None"""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.url or '/'}>"


def resolve_authorization_owner(resource: Resource, max_depth: int = 64) -> Resource:
    """
    Follow delegation to the resource that owns the decision.

    Raises:
        UnknownResource: If ``resource`` is not a Resource
        ConfigurationError: If delegation loops
    """
    if not isinstance(resource, Resource):
        raise UnknownResource(f"Not an authorization resource: {resource!r}")

    visited = []
    current = resource
    while True:
        delegate = current.authorization_delegate
        if delegate is None:
            return current
        if not isinstance(delegate, Resource):
            raise UnknownResource(f"{current!r} delegates to non-resource {delegate!r}")
        visited.append(current)
        if delegate in visited or len(visited) > max_depth:
            raise ConfigurationError(f"Authorization delegation loop at {current!r}")
        current = delegate
