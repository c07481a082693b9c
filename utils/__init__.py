from .env import load_project_dotenv  # noqa: F401
from .openai_utils import safe_chat_completion  # noqa: F401

# Load the project-level .env (RPC_URL, AGENT_PRIVATE_KEY, ...) once utils is imported.
load_project_dotenv()
