"""
Give an existing wallet HTTP API credentials

Usage:
    python create_api_user.py <userId> <username> <passwordHash>
"""
import sys

from coinledger.auth import hash_password
from coinledger.infrastructure.access.repository import AccessRepository
from coinledger.infrastructure.db.session import get_db, init_db
from coinledger.infrastructure.ledger.store import LedgerStore

if len(sys.argv) != 4:
    print(__doc__)
    sys.exit(1)

user_id, username, password_hash = sys.argv[1:]

init_db()
db = next(get_db())
store = LedgerStore(db)
access = AccessRepository(db)

existing = access.get_user_by_username(username)
if existing is not None and existing.id != user_id:
    print(f"Username already taken: {username} (ID: {existing.id})")
    db.close()
    sys.exit(1)

with store.atomic():
    store.ensure_account(user_id)
    access.set_credentials(user_id, username, hash_password(password_hash))

print("Credentials set:")
print(f"  User ID: {user_id}")
print(f"  Username: {username}")

db.close()
