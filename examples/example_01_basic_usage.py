"""Example 01: Basic Usage - VersionKV Fundamentals.

This example demonstrates the fundamental operations:
- Registering keys with and without an initial object
- Writing new versions with set() and grouping them under a job
- Reading the latest version and older versions by id
- Listing versions by schema key and unregistering a key
"""

import os

from versionkv import VersionedStore


def main():
    """Run the basic usage example."""
    print("=" * 80)
    print("VERSIONKV BASIC USAGE EXAMPLE")
    print("=" * 80)

    # Use a local path (not /tmp) for the database file.
    os.makedirs("tmp", exist_ok=True)
    with VersionedStore.open("tmp/basic_usage.db") as store:
        print("\n✓ Store opened: tmp/basic_usage.db")

        # Step 1: Register keys
        store.register("person/alice", {"name": "Alice Smith", "age": 32}, schema_key="Person")
        store.register("person/bob")
        print("\n✓ Registered person/alice (with object) and person/bob (empty)")

        # Step 2: Write versions under one job
        job_id = store.new_job_id()
        store.set(
            "person/alice", {"name": "Alice Smith", "age": 33}, job_id=job_id, schema_key="Person"
        )
        store.set(
            "person/bob", {"name": "Bob Jones", "age": 41}, job_id=job_id, schema_key="Person"
        )
        print(f"\n✓ Wrote 2 versions in job {job_id}")

        # Step 3: Read latest and historical versions
        print("\nLatest person/alice:", store.get("person/alice"))
        first = store.history("person/alice")[0]
        print("First person/alice:", store.get(version_id=first))

        # Step 4: Inspect
        print("\nAll Person versions:")
        for version_id in store.list_versions_by_type("Person"):
            print(f"  {version_id}")
        print("Job versions:", store.job_versions(job_id))
        print("Shape:", store.describe("person/bob").to_dict())

        # Step 5: Unregister
        store.unregister("person/bob")
        print("\n✓ person/bob registered:", store.has("person/bob"))

    print("\n" + "=" * 80)
    print("EXAMPLE COMPLETE")
    print("=" * 80)


if __name__ == "__main__":
    main()
