# mindmate/infra/prompts.py
from functools import lru_cache
from mindmate.infra.paths import PROMPTS_SYSTEM_PATH
from mindmate.exceptions import ConfigError

@lru_cache
def load_system_prompt() -> str:
    """mindmate-system-prompt.txt: persona plus the strict JSON output contract."""
    system_file = PROMPTS_SYSTEM_PATH
    if not system_file.exists():
        raise ConfigError(f"System prompt file is missing: {system_file}")
    return system_file.read_text(encoding="utf-8").strip()
