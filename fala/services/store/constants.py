"""Cache namespace names and store key prefixes."""

# Namespaces, one per content kind
NAMESPACE_CONJUGATIONS = "conjugations"
NAMESPACE_EXAMPLES = "examples"  # {verb}:{form}, and {verb} alone for general examples
NAMESPACE_VOCABULARY = "vocabulary"  # {category}
NAMESPACE_SCENES = "scenes"  # {domain}:{subtopic}:{function} or custom:{function}
NAMESPACE_SPEECH = "speech"  # {sentence text}, in-memory only

PERSISTED_NAMESPACES = (
    NAMESPACE_CONJUGATIONS,
    NAMESPACE_EXAMPLES,
    NAMESPACE_VOCABULARY,
    NAMESPACE_SCENES,
)

# Redis key prefix: fala:cache:{namespace}
KEY_PREFIX_NAMESPACE = "fala:cache"
