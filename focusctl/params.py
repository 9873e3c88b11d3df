"Static parameters for focusctl"

BIN_NAME = "focusctl"

# KWin script identity
SCRIPT_ID = "kwin-focus-helper"
SCRIPT_GROUP = f"Script-{SCRIPT_ID}"
CLASSES_KEY = "forceFocusClasses"
MODE_KEY = "mode"
DEBUG_KEY = "debug"
SCRIPT_MODES = ("activate", "raise")

PLUGINS_GROUP = "Plugins"
ENABLED_KEY = f"{SCRIPT_ID}Enabled"
# stored flag values read as enabled, compared lowercased
ENABLED_TRUE_VALUES = ("true", "1", "yes")

# kwinrc location relative to home
KWINRC_NAME = "kwinrc"
KWINRC_SUBPATH = ".config/kwinrc"
TMP_SUFFIX = f".tmp.{SCRIPT_ID}"

# system sources
PASSWD_PATH = "/etc/passwd"
RUNTIME_ROOT = "/run/user"

# logind session matching
SESSION_TYPES = ("x11", "wayland")
SESSION_CLASS = "user"
DEFAULT_WAYLAND_DISPLAY = "wayland-0"
DEFAULT_X11_DISPLAY = ":0"

# KWin dbus endpoints
KWIN_BUS_NAME = "org.kde.KWin"
KWIN_PATH = "/KWin"
KWIN_RECONFIGURE = "reconfigure"
KWIN_SCRIPTING_PATH = "/Scripting"
KWIN_SCRIPT_LOADED = "org.kde.kwin.Scripting.isScriptLoaded"

# bus call tools, most specific first
BUS_TOOLS = ("qdbus6", "qdbus-qt6", "qdbus-qt5", "qdbus")

# external tool timeout in seconds
TOOL_TIMEOUT = 10.0

SESSION_BACKENDS = ("loginctl", "dbus")
DEFAULT_SESSION_BACKEND = "loginctl"
