"""
Demo data seeding and inspection.

Usage:
    # Wipe the database and load demo data (admin, investors, KYC, transactions, portfolios, ...)
    silverlining-seed seed --yes

    # Reproducible run with fewer transactions
    silverlining-seed seed --yes --random-seed 7 --transactions 20

    # Print what is currently stored
    silverlining-seed view
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from silverlining.api.config import load_config
from silverlining.api.db.mongo import MongoManager
from silverlining.api.schemas.common import (
    KycStatus,
    LogCategory,
    LogLevel,
    NotificationType,
    TransactionStatus,
    TransactionType,
    UserRole,
    UserStatus,
    utc_now,
)
from silverlining.api.schemas.kyc import KycCreate, KycStatusUpdate
from silverlining.api.schemas.portfolio import Performance, PortfolioCreate
from silverlining.api.schemas.transactions import TransactionCreate, TransactionStatusUpdate
from silverlining.api.schemas.users import UserCreate
from silverlining.api.services import (
    admin_service,
    kyc_service,
    log_service,
    notifications_service,
    portfolio_service,
    transactions_service,
    users_service,
)
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

SEEDED_COLLECTIONS = (
    "users",
    "kyc_applications",
    "transactions",
    "portfolios",
    "notifications",
    "settings",
    "logs",
    "revoked_tokens",
)

INVESTOR_NAMES = [
    "Rahul Sharma",
    "Priya Patel",
    "Amit Kumar",
    "Neha Singh",
    "Rajesh Verma",
    "Sneha Gupta",
    "Vikram Malhotra",
    "Anjali Kapoor",
    "Sanjay Mehta",
    "Pooja Reddy",
]
INVESTOR_PASSWORD = "password123"

# Price per gram in INR.
SILVER_PRICES = [75.0, 78.0, 82.0, 85.0, 88.0, 92.0, 95.0, 98.0]
PAYMENT_METHODS = ["UPI", "Bank Transfer", "Credit Card", "Debit Card", "Net Banking"]
FEE_RATE = 0.02

ADMIN_NOTIFICATIONS = [
    ("System Update", "Database has been successfully seeded with sample data", NotificationType.SUCCESS),
    ("New KYC Applications", "New KYC applications require review", NotificationType.WARNING),
    ("High Transaction Volume", "System detected increased transaction activity", NotificationType.INFO),
    ("User Registration Alert", "New user registration detected", NotificationType.INFO),
    ("System Maintenance", "Scheduled maintenance completed successfully", NotificationType.SUCCESS),
    ("Security Alert", "Multiple failed login attempts detected", NotificationType.ERROR),
    ("Revenue Milestone", "Monthly revenue target achieved", NotificationType.SUCCESS),
    ("Database Backup", "Daily database backup completed", NotificationType.INFO),
]

LOG_LEVELS = [LogLevel.INFO, LogLevel.WARN, LogLevel.ERROR, LogLevel.AUDIT]
LOG_CATEGORIES = [
    LogCategory.AUTH,
    LogCategory.USER,
    LogCategory.TRANSACTION,
    LogCategory.PORTFOLIO,
    LogCategory.KYC,
    LogCategory.SYSTEM,
]
LOG_ACTIONS = ["LOGIN", "LOGOUT", "CREATE", "UPDATE", "DELETE", "APPROVE", "REJECT"]
BROWSER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _backdate(collection: Any, doc_id: str, **fields: Any) -> None:
    collection.update_one({"id": doc_id}, {"$set": fields})


def _token(rng: random.Random, size: int = 6) -> str:
    return "".join(rng.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(size))


def wipe(state: AppState) -> None:
    db = state.mongo.app_db()
    for name in SEEDED_COLLECTIONS:
        db[name].delete_many({})
    logger.info("Cleared existing data")


def _seed_investors(state: AppState, rng: random.Random, count: int) -> List[dict]:
    users = state.mongo.collections().users
    now = utc_now()
    investors = []
    for i in range(count):
        name = INVESTOR_NAMES[i % len(INVESTOR_NAMES)]
        created = users_service.create_user(
            state,
            UserCreate(
                name=name,
                email=f"user{i + 1}@example.com",
                phone=f"+9198765432{i:02d}",
                password=INVESTOR_PASSWORD,
                role=UserRole.USER,
                status=UserStatus.ACTIVE,
            ),
        )
        # Sign-ups spread over the last six months.
        joined = now - timedelta(days=30 * rng.randrange(6) + rng.randrange(30))
        _backdate(users, created.id, createdAt=joined, updatedAt=joined)
        investors.append({"id": created.id, "name": name, "email": created.email})
    logger.info("Created %d investors", len(investors))
    return investors


def _seed_kyc(state: AppState, rng: random.Random, investors: List[dict], admin: dict) -> None:
    cols = state.mongo.collections()
    for i, investor in enumerate(investors):
        kyc = kyc_service.create_application(
            state,
            KycCreate(
                user_id=investor["id"],
                pan_number=f"PAN_{_token(rng)}",
                aadhaar_number=f"AADHAAR_{_token(rng)}",
                notes=f"{rng.randrange(100)} Main Street, City {i + 1}",
            ),
        )
        submitted = utc_now() - timedelta(days=rng.uniform(0, 30))
        _backdate(cols.kyc_applications, kyc.id, submittedAt=submitted, createdAt=submitted)

        status = rng.choice(list(KycStatus))
        if status != KycStatus.PENDING:
            notes = "Document verification failed" if status == KycStatus.REJECTED else None
            kyc_service.update_status(state, kyc.id, KycStatusUpdate(status=status, notes=notes), reviewer=admin)


def _seed_transactions(state: AppState, rng: random.Random, investors: List[dict], count: int) -> None:
    cols = state.mongo.collections()
    now = utc_now()
    for _ in range(count):
        investor = rng.choice(investors)
        price = rng.choice(SILVER_PRICES)
        quantity = float(rng.randint(10, 110))
        amount = quantity * price
        status = rng.choice(list(TransactionStatus))
        txn = transactions_service.create_transaction(
            state,
            TransactionCreate(
                user_id=investor["id"],
                type=rng.choice(list(TransactionType)),
                amount=amount,
                silver_quantity=quantity,
                silver_price=price,
                payment_method=rng.choice(PAYMENT_METHODS),
                fees=round(amount * FEE_RATE, 2),
                details={"paymentGateway": "Razorpay", "transactionHash": f"HASH_{_token(rng)}"},
            ),
        )
        if status != TransactionStatus.PENDING:
            remarks = "Payment gateway timeout" if status == TransactionStatus.FAILED else None
            transactions_service.update_status(
                state, txn.id, TransactionStatusUpdate(status=status, remarks=remarks)
            )
        # History across six months so the monthly series and reports have data.
        when = now - timedelta(days=rng.uniform(0, 180))
        _backdate(cols.transactions, txn.id, createdAt=when, updatedAt=when, transactionDate=when)


def _seed_portfolios(state: AppState, rng: random.Random, investors: List[dict]) -> None:
    for investor in investors:
        portfolio = portfolio_service.create_portfolio(
            state,
            PortfolioCreate(
                user_id=investor["id"],
                total_silver_holding=0,
                total_invested=0,
                current_value=0,
                current_silver_price=rng.choice(SILVER_PRICES),
                performance=Performance(
                    daily=round(rng.uniform(-5, 5), 2),
                    weekly=round(rng.uniform(-10, 10), 2),
                    monthly=round(rng.uniform(-15, 15), 2),
                    yearly=round(rng.uniform(-25, 25), 2),
                ),
            ),
        )
        portfolio_service.sync_with_transactions(state, portfolio.id)


def _seed_notifications(state: AppState, rng: random.Random, investors: List[dict], admin: dict) -> None:
    cols = state.mongo.collections()
    for title, message, kind in ADMIN_NOTIFICATIONS:
        note = notifications_service.create_notification(
            state,
            admin["id"],
            title,
            message,
            kind,
            {"source": "system", "priority": "high" if kind == NotificationType.ERROR else "normal", "category": "admin"},
        )
        _backdate(cols.notifications, note.id, createdAt=utc_now() - timedelta(days=rng.randrange(7)))

    for i in range(10):
        investor = rng.choice(investors)
        kind = rng.choice([NotificationType.INFO, NotificationType.SUCCESS, NotificationType.WARNING])
        note = notifications_service.create_notification(
            state,
            investor["id"],
            f"User Notification {i + 1}",
            f"This is a {kind.value.lower()} notification for {investor['name']}",
            kind,
            {"source": "user", "priority": "normal"},
        )
        _backdate(cols.notifications, note.id, createdAt=utc_now() - timedelta(days=rng.randrange(30)))
        if rng.random() > 0.5:
            notifications_service.mark_as_read(state, note.id, investor["id"])


def _seed_logs(state: AppState, rng: random.Random, investors: List[dict], count: int) -> None:
    logs = state.mongo.collections().logs
    for _ in range(count):
        investor = rng.choice(investors)
        category = rng.choice(LOG_CATEGORIES)
        action = rng.choice(LOG_ACTIONS)
        entry = log_service.log(
            state,
            rng.choice(LOG_LEVELS),
            category,
            f"{action} action performed by {investor['name']}",
            user_id=investor["id"],
            user_email=investor["email"],
            action=action,
            resource=category.value,
            resource_id=_token(rng),
            ip_address=f"192.168.1.{rng.randrange(255)}",
            user_agent=BROWSER_AGENT,
            metadata={"sessionId": f"session_{_token(rng)}"},
        )
        if entry:
            _backdate(logs, entry["id"], timestamp=utc_now() - timedelta(days=rng.uniform(0, 30)))

    for _ in range(count // 5):
        investor = rng.choice(investors)
        entry = log_service.audit_log(
            state,
            LogCategory.USER,
            f"User profile updated by {investor['name']}",
            before_state={"status": UserStatus.ACTIVE.value},
            after_state={"status": UserStatus.ACTIVE.value},
            changes={"lastLogin": utc_now().isoformat()},
            user_id=investor["id"],
            user_email=investor["email"],
            action="UPDATE",
            resource="USER",
            resource_id=investor["id"],
        )
        if entry:
            _backdate(logs, entry["id"], timestamp=utc_now() - timedelta(days=rng.uniform(0, 7)))


def collection_counts(state: AppState) -> Dict[str, int]:
    db = state.mongo.app_db()
    return {name: int(db[name].count_documents({})) for name in SEEDED_COLLECTIONS if name != "revoked_tokens"}


# PUBLIC_INTERFACE
def seed_demo_data(
    state: AppState,
    *,
    investors: int = 10,
    transactions: int = 50,
    logs: int = 100,
    random_seed: Optional[int] = None,
) -> Dict[str, int]:
    """
    Replace every collection with demo data and return the per-collection counts.

    Data goes through the service layer, so the usual side effects (notifications, audit and
    transaction logs) are part of the result. Timestamps are then spread over past months.
    """
    if investors < 1:
        raise ValueError("investors must be at least 1")
    rng = random.Random(random_seed)

    wipe(state)
    state.mongo.init_indexes()
    admin_service.init_system(state)
    admin = users_service.find_user_doc_by_email(state, state.config.default_admin_email)
    assert admin is not None

    people = _seed_investors(state, rng, investors)
    _seed_kyc(state, rng, people, admin)
    _seed_transactions(state, rng, people, transactions)
    _seed_portfolios(state, rng, people)
    _seed_notifications(state, rng, people, admin)
    _seed_logs(state, rng, people, logs)

    counts = collection_counts(state)
    logger.info("Database seeding completed: %s", counts)
    return counts


# PUBLIC_INTERFACE
def describe(state: AppState) -> List[str]:
    """Human-readable overview of users, KYC, transactions, portfolios and collection totals."""
    cols = state.mongo.collections()
    names = {
        d["id"]: d["name"]
        for d in cols.users.find({}, projection={"_id": 0, "id": 1, "name": 1})
    }
    lines = ["Users:"]
    for u in cols.users.find({}, projection={"_id": 0, "password": 0}).sort("createdAt", 1):
        lines.append(f"  - {u['name']} ({u['email']}) - {u['role']} - {u['status']}")

    lines.append("KYC applications:")
    for k in cols.kyc_applications.find({}, projection={"_id": 0}).sort("submittedAt", 1):
        lines.append(
            f"  - {names.get(k['userId'], k['userId'])} - {k['status']} - submitted {k['submittedAt']:%Y-%m-%d}"
        )

    lines.append("Transactions:")
    for t in cols.transactions.find({}, projection={"_id": 0}).sort("createdAt", 1):
        lines.append(
            f"  - {names.get(t['userId'], t['userId'])} - {t['type']} ₹{t['amount']:,.2f} - {t['status']}"
            f" - {t['transactionDate']:%Y-%m-%d}"
        )

    lines.append("Portfolios:")
    for p in cols.portfolios.find({}, projection={"_id": 0}):
        lines.append(
            f"  - {names.get(p['userId'], p['userId'])} - {p['totalSilverHolding']:g}g"
            f" - invested ₹{p['totalInvested']:,.2f} - value ₹{p['currentValue']:,.2f}"
            f" - profit ₹{p['totalProfit']:,.2f}"
        )

    lines.append("Totals:")
    for name, count in collection_counts(state).items():
        lines.append(f"  - {name}: {count}")
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="silverlining-seed", description="Seed or inspect the Silver Lining database.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_seed = sub.add_parser("seed", help="Wipe the database and load demo data")
    p_seed.add_argument("--yes", action="store_true", help="Confirm that every collection may be wiped")
    p_seed.add_argument("--investors", type=int, default=10)
    p_seed.add_argument("--transactions", type=int, default=50)
    p_seed.add_argument("--logs", type=int, default=100)
    p_seed.add_argument("--random-seed", type=int, default=None, help="Make the generated data reproducible")

    sub.add_parser("view", help="Print an overview of the stored data")
    return parser


def run(state: AppState, args: argparse.Namespace) -> int:
    """Execute a parsed command against ``state``. Returns a process exit code."""
    if args.command == "seed":
        if not args.yes:
            logger.error("Refusing to wipe %s without --yes", state.config.mongo_db_name)
            return 2
        counts = seed_demo_data(
            state,
            investors=args.investors,
            transactions=args.transactions,
            logs=args.logs,
            random_seed=args.random_seed,
        )
        for name, count in counts.items():
            print(f"{name}: {count}")
        print(f"Admin login: {state.config.default_admin_email} / {state.config.default_admin_password}")
        print(f"Investor login: user1@example.com / {INVESTOR_PASSWORD}")
        return 0

    for line in describe(state):
        print(line)
    return 0


# PUBLIC_INTERFACE
def main(argv: Optional[Sequence[str]] = None) -> int:
    """Console entry point for ``silverlining-seed``."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s - %(message)s")
    args = build_parser().parse_args(argv)
    config = load_config()
    state = AppState(config=config, mongo=MongoManager(config.mongo_uri, db_name=config.mongo_db_name))
    try:
        if not state.mongo.ping():
            logger.error("Cannot reach MongoDB; check SILVER_MONGO_URI")
            return 1
        return run(state, args)
    finally:
        state.mongo.close()


if __name__ == "__main__":
    sys.exit(main())
