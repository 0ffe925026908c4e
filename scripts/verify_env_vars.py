"""
Compare the environment variables the settings model reads with a deployment's
variable list.

Usage:
  python scripts/verify_env_vars.py [VAR_NAME ...]
"""
import os
import sys

from app.config import Settings

REQUIRED_IN_PRODUCTION = {"DATABASE_URL", "SECRET_KEY"}


def find_env_vars():
    """Aliases declared on the settings model."""
    return sorted(field.alias for field in Settings.model_fields.values() if field.alias)


def verify(deployed_vars):
    code_vars = set(find_env_vars())
    deployed = set(deployed_vars)
    missing_required = sorted(REQUIRED_IN_PRODUCTION - deployed)
    unused = sorted(deployed - code_vars)

    print("=== ENV VAR VERIFICATION ===")
    print(f"Settings read: {len(code_vars)} vars")
    print(f"Deployment has: {len(deployed)} vars")
    print("")
    if missing_required:
        print(f"MISSING REQUIRED ({len(missing_required)}):")
        for v in missing_required:
            print(f"  - {v}")
    else:
        print("All required vars present.")
    print("")
    for provider, names in (("PayPal", ("PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET")), ("GitHub", ("GITHUB_TOKEN",))):
        state = "configured" if all(n in deployed for n in names) else "disabled"
        print(f"{provider} sync: {state}")
    print("")
    if unused:
        print(f"UNUSED BY SETTINGS ({len(unused)}):")
        for v in unused:
            print(f"  - {v}")
    return not missing_required


if __name__ == "__main__":
    names = sys.argv[1:] or [name for name in os.environ if name in set(find_env_vars())]
    sys.exit(0 if verify(names) else 1)
