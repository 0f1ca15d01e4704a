"""Cache key builders.

Equal keys must mean equal requests, so every builder uses exactly the
fields that determine the generated content and nothing else.
"""

CUSTOM_DOMAIN = "Custom"


def _part(value: str) -> str:
    # Escaped parts never contain a bare ':', so the separator count is exact
    return value.replace("\\", "\\\\").replace(":", "\\:")


def conjugation_key(verb: str) -> str:
    return verb


def example_key(verb: str, conjugated_form: str) -> str:
    return f"{_part(verb)}:{_part(conjugated_form)}"


def general_examples_key(verb: str) -> str:
    """Key for examples without a form; it has no bare ':' unlike every form key."""
    return _part(verb)


def vocabulary_key(category: str) -> str:
    return category


def scene_key(domain: str, subtopic: str, function_name: str) -> str:
    # Custom topics have no stable subtopic, only the function text
    if domain == CUSTOM_DOMAIN:
        return f"custom:{function_name}"
    return f"{domain}:{subtopic}:{function_name}"


def speech_key(text: str) -> str:
    return text
