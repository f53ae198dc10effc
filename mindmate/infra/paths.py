# mindmate/infra/paths.py
from mindmate.core.config import BASE_DIR

PACKAGE_DIR = BASE_DIR / "mindmate"
CONF_DIR    = PACKAGE_DIR / "conf"

PROMPTS_SYSTEM_PATH = CONF_DIR / "instruct" / "mindmate-system-prompt.txt"

KEY_PATH = CONF_DIR / "key-chat-api.txt"
