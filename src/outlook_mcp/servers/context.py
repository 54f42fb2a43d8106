from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from outlook_mcp.auth.service import AuthService
    from outlook_mcp.utils.environment import AuthSettings
    from outlook_mcp.utils.graph_client import GraphClient


@dataclass(frozen=True)
class MainAppContext:
    """
    Context holding the single auth service, the settings it was built from
    and the Graph client bound to it. Created once at server startup and
    shared by routes and tools.
    """

    auth: AuthService
    settings: AuthSettings
    graph: GraphClient
