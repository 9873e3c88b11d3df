import dbus
from focusctl.misc import print_debug
from focusctl.params import BIN_NAME


class DbusInteractions:
    "Handles focusctl interactions via DBus"

    # mapping of logical service keys to (bus_name, object_path)
    _SERVICES = {
        "login": ("org.freedesktop.login1", "/org/freedesktop/login1"),
        "notifications": (
            "org.freedesktop.Notifications",
            "/org/freedesktop/Notifications",
        ),
    }

    # mapping of service key -> { iface_key: iface_name, ... }
    _INTERFACES = {
        "login": {
            "manager": "org.freedesktop.login1.Manager",
            "properties": "org.freedesktop.DBus.Properties",
        },
        "notifications": {
            "notify": "org.freedesktop.Notifications",
        },
    }

    def __init__(self, dbus_level: str):
        "Takes dbus_level as 'system' or 'session'"
        if dbus_level in ["system", "session"]:
            print_debug("initiate dbus interaction", dbus_level)
            self.dbus_level = dbus_level
            self._bus = None
            self._proxies = {}
            self._interfaces = {}
        else:
            raise ValueError(
                f"dbus_level can be 'system' or 'session', got '{dbus_level}'"
            )

    def __str__(self):
        return f"DbusInteractions, instance level: {self.dbus_level}, cached interfaces: {sorted(self._interfaces)}"

    def _get_bus(self):
        """Lazily return and cache the system or session bus."""
        if self._bus is None:
            self._bus = (
                dbus.SystemBus() if self.dbus_level == "system" else dbus.SessionBus()
            )
        return self._bus

    def _get_proxy(self, service_key: str):
        """Retrieve and cache a DBus object proxy for the given service."""
        if service_key not in self._proxies:
            bus_name, path = self._SERVICES[service_key]
            self._proxies[service_key] = self._get_bus().get_object(bus_name, path)
        return self._proxies[service_key]

    def _get_interface(self, service_key: str, iface_key: str):
        """Retrieve and cache a DBus Interface for the given service and interface."""
        cache_key = f"{service_key}_{iface_key}"
        if cache_key not in self._interfaces:
            proxy = self._get_proxy(service_key)
            iface_name = self._INTERFACES[service_key][iface_key]
            self._interfaces[cache_key] = dbus.Interface(proxy, iface_name)
        return self._interfaces[cache_key]

    def _get_login_object_properties_iface(self, object_path: str):
        """Retrieve and cache a DBus.Properties interface for a logind session or user object."""
        cache_key = f"login_props_{object_path}"
        if cache_key not in self._interfaces:
            login_obj = self._get_bus().get_object(
                self._SERVICES["login"][0], object_path
            )
            self._interfaces[cache_key] = dbus.Interface(
                login_obj, "org.freedesktop.DBus.Properties"
            )
        return self._interfaces[cache_key]

    # External functions (doing stuff via objects)

    def list_login_sessions(self):
        "Lists login sessions as (id, uid, user, seat, object path) structs"
        return self._get_interface("login", "manager").ListSessions()

    def get_session_path(self, session_id: str):
        "Returns object path of logind session"
        return self._get_interface("login", "manager").GetSession(session_id)

    def get_session_property(self, session_path: str, session_property: str):
        "Returns value of logind session property"
        iface = self._get_login_object_properties_iface(session_path)
        return iface.Get("org.freedesktop.login1.Session", session_property)

    def get_user_property(self, uid: int, user_property: str):
        "Returns value of logind user property"
        user_path = self._get_interface("login", "manager").GetUser(dbus.UInt32(uid))
        iface = self._get_login_object_properties_iface(user_path)
        return iface.Get("org.freedesktop.login1.User", user_property)

    def notify(
        self,
        summary: str,
        body: str,
        app_name: str = BIN_NAME,
        replaces_id: int = 0,
        app_icon: str = "desktop",
        actions: list | None = None,
        hints: dict | None = None,
        expire_timeout: int = -1,
        # custom helpers
        urgency: int = 1,
    ):
        "Sends notification via Dbus"
        iface = self._get_interface("notifications", "notify")
        if actions is None:
            actions = []
        if hints is None:
            hints = {}
        if not 0 <= urgency <= 2:
            raise ValueError(f"Urgency range is 0-2, got {urgency}")
        # plain integer does not work
        hints["urgency"] = dbus.Byte(urgency)
        iface.Notify(
            app_name,
            replaces_id,
            app_icon,
            summary,
            body,
            actions,
            hints,
            expire_timeout,
        )
