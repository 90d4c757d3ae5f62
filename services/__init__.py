from .profiles import (
    UsernameTakenError,
    ensure_profile,
    get_profile,
    get_profile_by_id,
    get_profile_by_username,
    update_profile_data,
    set_profile_avatar,
    search_developers,
    collect_skills,
)
from .projects import (
    create_user_project,
    get_projects_feed,
    get_project,
    get_user_projects,
)

from .connections import (
    CONNECTED,
    NO_CONNECTION,
    ConnectionState,
    ConnectionsOverview,
    resolve_status,
    get_connection_status,
    send_connect_request,
    withdraw_connection_request,
    accept_connection_request,
    reject_connection_request,
    get_connection_request,
    remove_connection,
    get_connections_overview,
)
from .inflight import InFlightActions, in_flight
from .materializer import ConnectionMaterializer
from .profile_view import (
    ProfileSnapshot,
    ProfileView,
    ProfileViewRegistry,
    load_profile_snapshot,
    profile_views,
)

__all__ = [
    "UsernameTakenError",
    "ensure_profile",
    "get_profile",
    "get_profile_by_id",
    "get_profile_by_username",
    "update_profile_data",
    "set_profile_avatar",
    "search_developers",
    "collect_skills",
    "create_user_project",
    "get_projects_feed",
    "get_project",
    "get_user_projects",
    "CONNECTED",
    "NO_CONNECTION",
    "ConnectionState",
    "ConnectionsOverview",
    "resolve_status",
    "get_connection_status",
    "send_connect_request",
    "withdraw_connection_request",
    "accept_connection_request",
    "reject_connection_request",
    "get_connection_request",
    "remove_connection",
    "get_connections_overview",
    "InFlightActions",
    "in_flight",
    "ConnectionMaterializer",
    "ProfileSnapshot",
    "ProfileView",
    "ProfileViewRegistry",
    "load_profile_snapshot",
    "profile_views",
]
