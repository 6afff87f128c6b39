"""Example 02: Error Handling.

This example demonstrates how store failures surface:
- NoVersionError for keys registered without an object
- InvalidPayloadError for non-object payloads and rejected validation
- Error kinds and context (operation, key, version)
- Strict registration via StoreConfig
"""

import os

from versionkv import (
    AlreadyRegisteredError,
    InvalidPayloadError,
    NoVersionError,
    StoreConfig,
    VersionedStore,
    VersionKVError,
)


def adults_only(schema_key, obj):
    """Validator: reject people younger than 18."""
    return obj.get("age", 0) >= 18


def main():
    """Run error handling example."""
    print("=" * 80)
    print("EXAMPLE 02: ERROR HANDLING")
    print("=" * 80)

    os.makedirs("tmp", exist_ok=True)
    config = StoreConfig(db_path="tmp/error_handling.db", strict_registration=True)
    with VersionedStore.open(config=config, validator=adults_only) as store:
        print("\n1. Reading a key that has no version yet:")
        if not store.has("draft"):
            store.register("draft")
        try:
            store.get("draft")
        except NoVersionError as e:
            print(f"  ✓ Caught {e.kind.value}: key={e.key} operation={e.operation}")

        print("\n2. Writing a payload that is not an object:")
        try:
            store.set("draft", ["not", "an", "object"])
        except InvalidPayloadError as e:
            print(f"  ✓ Caught: {e}")

        print("\n3. Writing a payload the validator rejects:")
        if not store.has("person/kid"):
            store.register("person/kid", check=True)
        try:
            store.set("person/kid", {"name": "Kid", "age": 9})
        except InvalidPayloadError as e:
            print(f"  ✓ Caught during {e.operation}: {e}")

        print("\n4. Registering a live key with strict registration:")
        try:
            store.register("draft")
        except AlreadyRegisteredError as e:
            print(f"  ✓ Caught: {e}")

        print("\n5. Catching any store error:")
        try:
            store.get(version_id="01AAAAAAAAAAAAAAAAAAAAAAAA")
        except VersionKVError as e:
            print(f"  ✓ Caught {type(e).__name__} ({e.kind.value})")

    print("\n" + "=" * 80)
    print("EXAMPLE COMPLETE")
    print("=" * 80)


if __name__ == "__main__":
    main()
