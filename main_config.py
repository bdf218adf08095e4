import os
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_DIR = os.path.join(BASE_DIR, "db")
USER_DIR = os.path.join(DB_DIR, "user")
CREDENTIALS_PATH = os.path.join(USER_DIR, "credentials.json")
WORKSPACE_DIR = os.environ.get("AGENT_WORKSPACE") or os.path.join(BASE_DIR, "workspace")

PROMPTS_DIR = os.path.join(BASE_DIR, "prompts")
DEFAULT_SYSTEM_PROMPT_PATH = os.path.join(PROMPTS_DIR, "agent_system_prompt.md")
