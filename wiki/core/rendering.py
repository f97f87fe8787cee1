from pathlib import Path

import markdown
from fastapi.templating import Jinja2Templates

EMPTY_PAGE_MARKDOWN = "# A new page\n\nFeel-free to write in Markdown!\n"

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def render_markdown(text: str) -> str:
    return markdown.markdown(text)
