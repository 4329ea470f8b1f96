"""Create an admin API key and print its raw value once."""
import argparse

from tradiepay.db import session_factory
from tradiepay.models.api_key import ApiKey, ApiScope
from tradiepay.utils.apikey import gen_key
from tradiepay.utils.audit import log_audit


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default="bootstrap-admin", help="unique key name")
    args = parser.parse_args()

    db = session_factory()()
    raw, prefix, key_hash = gen_key()

    try:
        api_key = ApiKey(
            name=args.name,
            prefix=prefix,
            key_hash=key_hash,
            scope=ApiScope.admin,
            is_active=True,
        )
        db.add(api_key)
        db.flush()
        log_audit(
            db,
            actor="cli",
            action="CREATE_API_KEY",
            entity="ApiKey",
            entity_id=api_key.id,
            data={"name": api_key.name, "scope": api_key.scope.value},
        )
        db.commit()

        print("Admin API key created; it will not be shown again:")
        print(f"    Authorization: Bearer {raw}")
        print(f"(DB id: {api_key.id}, prefix: {api_key.prefix})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
