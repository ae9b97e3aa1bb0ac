"""URL pattern formatting.

Routes are registered with colon syntax (``/user/:id``), which is not a
valid OpenAPI path. ``format_param_url`` rewrites a pattern into the brace
template syntax (``/user/{id}``):

    /example/:userId            -> /example/{userId}
    /example/:file(^\\d+).png   -> /example/{file}.png
    /example/(^\\d+)            -> /example/{regexp1}
    /name::verb                 -> /name:verb
    /example/*                  -> /example/{wildcard}
    /example/:name*             -> /example/{name}*

A ``*`` right after a parameter name ends the name and stays literal;
anywhere else it becomes the wildcard.

Regex captures may contain nested parentheses, so the formatter is a small
state machine with a paren depth counter rather than a regular expression.
"""

import re
import string

PARAM_CHARS = frozenset(string.ascii_letters + string.digits + "_")
WILDCARD = "{wildcard}"

_SCAN = "scan"
_IN_PARAM = "in_param"
_IN_REGEX_CAPTURE = "in_regex_capture"

_PARAM_PATTERN = re.compile(r"\{([^{}]+)\}")


def format_param_url(pattern: str) -> str:
    """Convert a colon-syntax route pattern into a brace path template."""
    state = _SCAN
    path: list[str] = []
    param = ""
    depth = 0
    unnamed = 0

    i = 0
    while i < len(pattern):
        char = pattern[i]

        if state == _IN_PARAM:
            if char in PARAM_CHARS:
                param += char
            elif char == "(":
                state = _IN_REGEX_CAPTURE
                depth += 1
            else:
                state = _SCAN
                path.append("{" + param + "}" if param else ":")
                path.append(char)
                param = ""

        elif state == _IN_REGEX_CAPTURE:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            if depth == 0:
                state = _SCAN
                if not param:
                    unnamed += 1
                    param = f"regexp{unnamed}"
                path.append("{" + param + "}")
                param = ""

        else:
            if char == ":" and pattern[i + 1 : i + 2] == ":":
                # escaped colon, e.g. a custom verb: /name::verb
                path.append(":")
                i += 1
            elif char == ":":
                state = _IN_PARAM
            elif char == "(":
                state = _IN_REGEX_CAPTURE
                depth += 1
            elif char == "*":
                path.append(WILDCARD)
            else:
                path.append(char)

        i += 1

    if state == _IN_PARAM:
        path.append("{" + param + "}" if param else ":")
    elif state == _IN_REGEX_CAPTURE:
        if not param:
            unnamed += 1
            param = f"regexp{unnamed}"
        path.append("{" + param + "}")

    return "".join(path)


def match_params(url: str | None) -> list[str]:
    """Return the parameter names of a brace path template, in order."""
    if not url:
        return []
    return _PARAM_PATTERN.findall(url)


def has_params(url: str | None) -> bool:
    return bool(match_params(url))


def generate_params_schema(url: str) -> dict:
    """Build a default ``params`` schema: one string property per path parameter."""
    return {
        "type": "object",
        "properties": {name: {"type": "string"} for name in match_params(url)},
    }
