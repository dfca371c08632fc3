"""Constants for the Eeko trigger automation plugin."""

ACTION_UUID = "com.eeko.eeko.trigger-automation"

# Remote API
DEFAULT_API_BASE_URL = "https://api.eeko.app"
AUTOMATIONS_PATH = "/api/triggers/automations"
TRIGGER_PATH = "/api/triggers/streamdeck"
API_KEY_HEADER = "x-eeko-api-key"

# Settings keys (per button and global)
CONF_AUTOMATION_ID = "automationId"
CONF_AUTOMATION_NAME = "automationName"
CONF_API_KEY = "apiKey"

# Defaults
DEFAULT_DEVICE_NAME = "Stream Deck Device"
DEFAULT_REQUEST_TIMEOUT = 10
DEFAULT_SUCCESS_RESET_DELAY = 2.0  # seconds before "Triggered!" reverts
DEFAULT_FAILURE_RESET_DELAY = 3.0  # seconds before alerts and errors revert
DEFAULT_LOG_LEVEL = "ERROR"

# Images
IMAGE_DEFAULT = "imgs/actions/automation/key"
IMAGE_PRESSED = "imgs/actions/automation/key-pressed"

# Titles
TITLE_CONFIGURE = "Configure\nAutomation"
TITLE_SELECT = "Select\nAutomation"
TITLE_MISSING_API_KEY = "Missing\nAPI Key"
TITLE_NO_AUTOMATION = "No Automation\nSelected"
TITLE_TRIGGERING_PREFIX = "Triggering\n"
TITLE_TRIGGERED_PREFIX = "Triggered!\n"
TITLE_ERROR_PREFIX = "Error\n"

# Host events
EVENT_WILL_APPEAR = "willAppear"
EVENT_WILL_DISAPPEAR = "willDisappear"
EVENT_KEY_DOWN = "keyDown"
EVENT_KEY_UP = "keyUp"
EVENT_DID_RECEIVE_SETTINGS = "didReceiveSettings"
EVENT_SEND_TO_PLUGIN = "sendToPlugin"

# Property inspector requests
PI_SAVE_API_KEY = "saveApiKey"
PI_TEST_API_KEY = "testApiKey"
PI_FETCH_AUTOMATIONS = "fetchAutomations"
PI_GET_API_KEY = "getApiKey"

# Property inspector relays
PI_EVENT_API_KEY_LOADED = "apiKeyLoaded"
PI_EVENT_API_KEY_TESTED = "apiKeyTested"
PI_EVENT_AUTOMATIONS_LOADED = "automationsLoaded"
PI_EVENT_AUTOMATIONS_ERROR = "automationsError"
PI_EVENT_API_KEY_ERROR = "apiKeyError"

# Relay messages
MSG_INVALID_API_KEY_FORMAT = "Invalid API key format"
MSG_SAVE_FAILED = "Failed to save API key"

# Reason recorded when the trigger request itself fails
MSG_TRIGGER_FAILED = "Failed to trigger automation"

# Note: button state constants (STATE_READY, STATE_TRIGGERING, ...) live in
# state_machine.py next to the transition table that uses them.
