import json
import re


def clean_json(raw: str) -> str:
    """Strip markdown code-fence wrappers from a model's JSON response.

    Models frequently wrap JSON output in `` ```json … ``` `` or `` ``` … ``` ``
    fences.  Returns *raw* unchanged when it is falsy.
    """
    if not raw:
        return raw
    text = re.sub(r"^\s*```[a-zA-Z]*\s*\n?", "", raw.strip())
    text = re.sub(r"\n?```\s*$", "", text)
    return text.strip()


def safe_loads(raw: str):
    """Parse *raw* as JSON, retrying once with fences stripped.

    Raises:
        json.JSONDecodeError: If the string cannot be parsed even after cleaning.
    """
    cleaned_for_encoding = raw.encode("utf-8", "ignore").decode("utf-8")
    try:
        return json.loads(cleaned_for_encoding)
    except json.JSONDecodeError:
        return json.loads(clean_json(cleaned_for_encoding))
