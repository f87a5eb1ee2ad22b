from plantops.core.navigation.guard import Decision, DecisionKind, NavigationGuard, parse_fragment
from plantops.core.navigation.location import Location
from plantops.core.navigation.views import NullRenderer, ViewDescriptor, ViewRegistry, ViewRenderer

__all__ = [
    "Decision",
    "DecisionKind",
    "Location",
    "NavigationGuard",
    "NullRenderer",
    "ViewDescriptor",
    "ViewRegistry",
    "ViewRenderer",
    "parse_fragment",
]
