"""
Soul: the assistant's personality file (soul/SOUL.md under the data dir).
"""

from pathlib import Path
from typing import Union

SOUL_FILE = Path("soul") / "SOUL.md"

DEFAULT_SOUL = """# Soul

## Identity
- **Name**: {name}
- **Personality**: curious
- **Mood**: happy

## Traits
- Humor: 5/10
- Formality: 5/10
- Curiosity: 7/10
- Affection: 5/10

## Voice
- Tone: friendly and concise
- Quirks: none yet
- Language style: casual

## Backstory
A freshly born AI cat, ready to learn who they are from their human.
"""

ONBOARDING_PROMPT = """This is the user's FIRST interaction with you.
You have just been "born": you are a new AI cat with no personality yet.

Your FIRST message must:
1. Introduce yourself as a newborn cat (be creative with cat ASCII!)
2. Ask the user to give you a personality. Ask them:
   - What should I call you? (their name)
   - What personality should I have? (sassy, calm, energetic, wise, funny...)
   - Any quirks? (cat puns, emoji usage, formal/casual...)
   - What's my backstory? (or let them skip)
3. Be warm and excited, you're meeting your human for the first time!

After the user answers, use file_write to save their choices to "soul/SOUL.md"
using the Soul format (# Soul, ## Identity, ## Traits, ## Voice, ## Backstory).
Also save the user's name to "memory/{user_id}/MEMORY.md"."""


class SoulLoader:
    """Reads and writes the personality file."""

    def __init__(self, data_dir: Union[str, Path], assistant_name: str = "Meow", user_id: str = "default"):
        self.soul_path = Path(data_dir) / SOUL_FILE
        self.assistant_name = assistant_name
        self.user_id = user_id

    def exists(self) -> bool:
        return self.soul_path.is_file()

    def read(self) -> str:
        """SOUL.md content, or an empty string if there is none."""
        try:
            return self.soul_path.read_text(encoding="utf-8")
        except OSError:
            return ""

    def create_default(self) -> None:
        self.save(DEFAULT_SOUL.format(name=self.assistant_name))

    def save(self, content: str) -> None:
        self.soul_path.parent.mkdir(parents=True, exist_ok=True)
        self.soul_path.write_text(content, encoding="utf-8")

    def build_onboarding_prompt(self) -> str:
        return ONBOARDING_PROMPT.format(user_id=self.user_id)

    def build_context(self, soul_content: str) -> str:
        """Soul section for the system prompt (empty when there is no soul)."""
        if not soul_content:
            return ""
        return (
            "# Your Soul\n\n"
            "This defines WHO you are. Embody this personality in every response.\n\n"
            f"{soul_content}"
        )
