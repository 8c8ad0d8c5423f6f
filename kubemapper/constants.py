"""
Shared module to hold constant values for the library
"""

# Schema extension keys that mark a node as a reference mapping
X_KUBERNETES_MAPPING = "x-kubernetes-mapping"
X_OPENAPI_MAPPING = "x-openapi-mapping"

# Keys used in the mapping schema documents
PROPERTIES = "properties"
ITEMS = "items"

# Keys in an expanded reference value
REF_NAME = "name"
REF_KEY = "key"

# Suffix of a property selector that is completed with the API property name
PROPERTY_SELECTOR_SUFFIX = ".#"

# Path segment meaning "search each element of the enclosing array"
ARRAY_ELEMENT = "[]"

# Delimiter used for path locators like ".data.apiKey"
PATH_DELIM = "."

# Prefix of a JSONPath style locator
XPATH_ROOT = "$"

# Name of the versioned spec section that holds the API entry
ENTRY_FIELD = "entry"

# Sentinel namespace meaning "use the namespace of the main object"
MAIN_NAMESPACE = "__MAIN_NAMESPACE__"

# Maximum length for a kubernetes name
MAX_NAME_LEN = 63

# Group/version/resource of core Secrets
SECRETS_GVR = "v1/secrets"
