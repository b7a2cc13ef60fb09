"""Quickstart: configure a local provider, write, list and read.

Demonstrates:
- Creating an EngineConfig with a local provider
- Opening a Registry and getting a provider
- Results that carry data or an error instead of raising
"""

from __future__ import annotations

import tempfile

from remote_ops import EngineConfig, ListOptions, ProviderConfig, Registry

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp:
        config = EngineConfig(providers={"disk": ProviderConfig(type="local", options={"root": tmp})})

        with Registry(config) as registry:
            provider = registry.get_provider("disk")
            print(f"Capabilities: {sorted(c.value for c in provider.capabilities)}")

            # Write a file; parents are created on demand
            provider.write("docs/hello.txt", b"Hello, world!").unwrap()

            # List recursively
            page = provider.list("", ListOptions(recursive=True)).unwrap()
            for entry in page.entries:
                print(f"{entry.type.value:9} {entry.path}")

            # Read it back
            result = provider.read("docs/hello.txt")
            if result.is_success:
                print(f"Content: {result.data!r}")

            # A missing file is a result, not an exception
            missing = provider.read("docs/nope.txt")
            print(f"Missing file status: {missing.status.value}")

    print("Done! Temp directory cleaned up automatically.")
