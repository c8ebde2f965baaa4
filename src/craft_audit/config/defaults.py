"""Default configuration values and starter .craft-audit.toml template."""

DEFAULT_TOML = """\
# craft-audit configuration
version = "1.0"

[audit]
# templates = "templates"        # template root, relative to this file
changed_only = false
# base_ref = "auto"              # explicit git ref, or "auto" to read CI variables
security_file_limit = 2000
# site_url = "https://example.com"
# rules_dir = ".craft-audit-rules"
# timeout = 120                  # seconds for the whole analyzer stage

[output]
format = "console"               # console | json | sarif
exit_threshold = "high"          # none | high | medium | low | info

[baseline]
enabled = true
# path = ".craft-audit-baseline.json"

[cache]
enabled = false
# location = ".craft-audit-cache.json"

[rules]
# preset = "balanced"            # strict | balanced | legacy-migration

# [rules.settings."template/missing-limit"]
# severity = "low"
# ignore_paths = ["_legacy/**"]

# [rules.settings."template/include-tag"]
# enabled = false
"""
