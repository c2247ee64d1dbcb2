"""Command-line interface for Trust Ledger."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from uuid import UUID

from trust_ledger import __version__
from trust_ledger.config import DatabaseType, Settings, get_settings
from trust_ledger.container import Container
from trust_ledger.domain.accounts import TrustAccount
from trust_ledger.domain.reports import StatementFile
from trust_ledger.domain.transactions import TrustTransaction
from trust_ledger.domain.value_objects import TransactionType, TrustAccountType
from trust_ledger.exceptions import TrustLedgerError
from trust_ledger.logging_config import LogContext, configure_logging, get_logger
from trust_ledger.services.directory import InMemoryLeaseDirectory
from trust_ledger.services.interfaces import InterestAccrualResult

logger = get_logger(__name__)


def _uuid_arg(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ID: {value}") from None


def _date_arg(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid date (expected YYYY-MM-DD): {value}"
        ) from None


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings, with --database forcing a SQLite file."""
    settings = get_settings()
    if args.database:
        settings = settings.model_copy(
            update={
                "database_type": DatabaseType.SQLITE,
                "sqlite_path": Path(args.database),
            }
        )
    return settings


def create_container(
    args: argparse.Namespace, lease_directory: InMemoryLeaseDirectory | None = None
) -> Container:
    return Container(settings=build_settings(args), lease_directory=lease_directory)


def _sqlite_path(settings: Settings) -> Path | None:
    if settings.database_type == DatabaseType.SQLITE:
        return Path(settings.sqlite_path)
    return None


def _format_account(account: TrustAccount) -> str:
    status = "active" if account.is_active else "inactive"
    interest = (
        f", {account.interest_rate}% APR" if account.is_interest_bearing else ""
    )
    return (
        f"{account.id}  {account.name} ({account.account_type.value}) "
        f"[{status}] balance {account.balance}{interest}"
    )


def _format_transaction(txn: TrustTransaction) -> str:
    mark = "R" if txn.is_reconciled else " "
    sign = "-" if txn.transaction_type.is_debit else "+"
    return (
        f"{mark} {txn.transaction_date}  {txn.id}  {txn.transaction_type.value:<10} "
        f"{sign}{txn.amount:>12}  -> {txn.balance_after:>12}  {txn.description}"
    )


def _format_accrual(result: InterestAccrualResult) -> str:
    line = f"{result.account_id}: {result.status.value}"
    if result.interest_amount:
        line += f" {result.interest_amount}"
    if result.average_daily_balance is not None:
        line += f" (average daily balance {result.average_daily_balance:.2f})"
    if result.error:
        line += f" - {result.error}"
    return line


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database."""
    settings = build_settings(args)
    db_path = _sqlite_path(settings)

    if db_path is not None and str(db_path) != ":memory:":
        if db_path.exists() and not args.force:
            print(f"Database already exists at {db_path}")
            print("Use --force to reinitialize (WARNING: will delete existing data)")
            return 1
        if db_path.exists() and args.force:
            db_path.unlink()
        db_path.parent.mkdir(parents=True, exist_ok=True)

    with Container(settings=settings) as container:
        container.database.initialize()

    location = db_path if db_path is not None else "PostgreSQL"
    print(f"Initialized database at {location}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show database status."""
    settings = build_settings(args)
    db_path = _sqlite_path(settings)
    if db_path is not None and not db_path.exists():
        print(f"No database found at {db_path}")
        print("Run 'trust-ledger init' to create a new database")
        return 1

    with Container(settings=settings) as container:
        accounts = container.account_service.list_interest_bearing_accounts()
        print(f"Database: {db_path if db_path is not None else 'PostgreSQL'}")
        print(f"Interest-bearing accounts: {len(accounts)}")
        for account in accounts:
            print(f"  - {_format_account(account)}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"Trust Ledger v{__version__}")
    return 0


def cmd_account_create(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        account = container.account_service.create_account(
            args.property_id,
            args.name,
            args.type,
            bank_name=args.bank_name,
            account_number=args.account_number,
            routing_number=args.routing_number,
            is_interest_bearing=args.interest_rate is not None,
            interest_rate=args.interest_rate,
            created_by=args.user_id,
        )
    print(f"Account created: {account.id}")
    print(f"  {_format_account(account)}")
    return 0


def cmd_account_list(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        accounts = container.account_service.list_accounts(
            args.property_id,
            include_inactive=args.all,
            account_type=TrustAccountType(args.type) if args.type else None,
        )
    if not accounts:
        print("No trust accounts found")
        return 0
    for account in accounts:
        print(_format_account(account))
    return 0


def cmd_account_show(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        account = container.account_service.get_account(args.account_id)
        check = container.ledger_service.verify_balance(args.account_id)
    print(f"Account: {account.name}")
    print(f"  ID: {account.id}")
    print(f"  Property: {account.property_id}")
    print(f"  Type: {account.account_type.value}")
    print(f"  Bank: {account.bank_name or '-'}")
    print(f"  Account number: {account.account_number or '-'}")
    print(f"  Routing number: {account.routing_number or '-'}")
    if account.is_interest_bearing:
        print(f"  Interest rate: {account.interest_rate}% APR")
    print(f"  Status: {'active' if account.is_active else 'inactive'}")
    print(f"  Balance: {account.balance}")
    if not check.is_consistent:
        print(
            f"  WARNING: ledger replay gives {check.replayed_balance}, "
            f"stored balance is {check.stored_balance}"
        )
    return 0


def cmd_account_update(args: argparse.Namespace) -> int:
    fields: dict[str, object] = {}
    for attr in ("name", "bank_name", "account_number", "routing_number"):
        value = getattr(args, attr)
        if value is not None:
            fields[attr] = value
    if args.no_interest:
        fields["is_interest_bearing"] = False
    elif args.interest_rate is not None:
        fields["is_interest_bearing"] = True
        fields["interest_rate"] = args.interest_rate
    if not fields:
        print("Nothing to update")
        return 1

    with create_container(args) as container:
        account = container.account_service.update_account(args.account_id, **fields)
    print(f"Account updated: {_format_account(account)}")
    return 0


def cmd_account_deactivate(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        account = container.account_service.deactivate_account(args.account_id)
    print(f"Account deactivated: {account.id}")
    return 0


def cmd_post(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        txn = container.ledger_service.post(
            args.account_id,
            TransactionType(args.post_command),
            args.amount,
            args.date or date.today(),
            description=args.description,
            reference_number=args.reference,
            tenant_id=args.tenant_id,
            lease_id=args.lease_id,
            created_by=args.user_id,
        )
    print(f"Posted {txn.transaction_type.value}: {txn.id}")
    print(f"  Amount: {txn.amount}")
    print(f"  Balance: {txn.balance_after}")
    return 0


def cmd_transfer(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        result = container.transfer_service.transfer(
            args.from_account_id,
            args.to_account_id,
            args.amount,
            args.date or date.today(),
            args.description,
            reference_number=args.reference,
            created_by=args.user_id,
        )
    print(f"Transferred {result.amount}")
    print(
        f"  From: {args.from_account_id} "
        f"{result.from_previous_balance} -> {result.from_new_balance}"
    )
    print(
        f"  To:   {args.to_account_id} "
        f"{result.to_previous_balance} -> {result.to_new_balance}"
    )
    return 0


def cmd_transactions(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        transactions = container.ledger_service.list_transactions(
            args.account_id,
            start_date=args.start,
            end_date=args.end,
            transaction_type=TransactionType(args.type) if args.type else None,
            is_reconciled=False if args.unreconciled else None,
        )
    if not transactions:
        print("No transactions found")
        return 0
    for txn in transactions:
        print(_format_transaction(txn))
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        result = container.reconciliation_service.reconcile(
            args.account_id,
            args.transaction_ids,
            args.date or date.today(),
            args.user_id,
        )
    print(
        f"Reconciled {result.reconciled_count} of "
        f"{len(args.transaction_ids)} transactions"
    )
    return 0


def cmd_statement(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        service = container.statement_service
        statement = service.generate_statement(args.account_id, args.start, args.end)
        rendered = service.render_statement(statement, args.format)

    if isinstance(rendered, StatementFile):
        content = rendered.content
        default_name = rendered.filename
    else:
        content = json.dumps(rendered, indent=2)
        default_name = None

    if args.output:
        output = Path(args.output)
        if output.is_dir() and default_name:
            output = output / default_name
        output.write_text(content)
        print(f"Statement written to {output}")
    else:
        print(content)
    return 0


def cmd_audit_report(args: argparse.Namespace) -> int:
    directory = InMemoryLeaseDirectory.from_json(args.leases) if args.leases else None
    with create_container(args, lease_directory=directory) as container:
        report = container.audit_report_service.generate_audit_report(
            args.property_id, args.start, args.end
        )

    summary = report.summary
    print(f"Trust Account Audit Report: property {report.property_id}")
    print(f"Period: {report.start_date} to {report.end_date}")
    print(f"Accounts: {summary.total_accounts}")
    print(f"Transactions: {summary.total_transactions}")
    print(f"  Deposits:    {summary.totals.deposits}")
    print(f"  Withdrawals: {summary.totals.withdrawals}")
    print(f"  Interest:    {summary.totals.interest}")
    print(f"  Fees:        {summary.totals.fees}")
    print(f"  Net change:  {summary.net_change}")
    print(f"Current balance: {summary.current_balance}")
    print()
    for section in report.accounts:
        print(_format_account(section.account))
        print(
            f"    opening {section.opening_balance}  closing {section.closing_balance}"
            f"  ({len(section.transactions)} transactions)"
        )
    print()
    print(f"Unreconciled transactions: {len(report.unreconciled_transactions)}")
    for txn in report.unreconciled_transactions:
        print(f"  {_format_transaction(txn)}")

    compliance = report.deposit_compliance
    if compliance is not None:
        print()
        state = "COMPLIANT" if compliance.is_compliant else "NON-COMPLIANT"
        print(f"Security deposit compliance: {state}")
        print(f"  Account balance: {compliance.account_balance}")
        print(f"  Required: {compliance.required_total} ({len(compliance.leases)} leases)")
        print(f"  Difference: {compliance.difference}")
    return 0


def cmd_deposit_balance(args: argparse.Namespace) -> int:
    directory = InMemoryLeaseDirectory.from_json(args.leases)
    with create_container(args, lease_directory=directory) as container:
        ledger = container.statement_service.security_deposit_balance(args.tenant_id)

    print(f"Security deposit for tenant {ledger.tenant_id}")
    print(f"  Deposits:    {ledger.totals.deposits}")
    print(f"  Withdrawals: {ledger.totals.withdrawals}")
    print(f"  Balance:     {ledger.balance}")
    for txn in ledger.transactions:
        print(f"  {_format_transaction(txn)}")
    return 0


def cmd_interest_accrue(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        result = container.interest_service.accrue_interest_for_month(
            args.account_id, args.as_of or date.today(), created_by=args.user_id
        )
    print(_format_accrual(result))
    return 0


def cmd_interest_apply(args: argparse.Namespace) -> int:
    with create_container(args) as container:
        batch = container.interest_service.apply_monthly_interest(
            args.as_of or date.today(), created_by=args.user_id
        )
    print(f"Processed {batch.total_accounts} accounts")
    print(f"Total interest applied: {batch.total_interest_applied}")
    for result in batch.results:
        print(f"  {_format_accrual(result)}")
    return 1 if batch.failed else 0


def _show_help(parser: argparse.ArgumentParser):
    def show(args: argparse.Namespace) -> int:
        parser.print_help()
        return 0

    return show


def _add_posting_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("account_id", type=_uuid_arg, help="Trust account ID")
    parser.add_argument("amount", help="Amount, e.g. 1500.00")
    parser.add_argument("--date", type=_date_arg, help="Transaction date (YYYY-MM-DD)")
    parser.add_argument("--description", default="", help="Description")
    parser.add_argument("--reference", help="Reference or check number")
    parser.add_argument("--tenant-id", type=_uuid_arg, help="Tenant ID")
    parser.add_argument("--lease-id", type=_uuid_arg, help="Lease ID")
    parser.add_argument("--user-id", type=_uuid_arg, help="Acting user ID")


def _add_period_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=_date_arg, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=_date_arg, help="End date (YYYY-MM-DD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trust-ledger",
        description="Trust Ledger - Property trust account management",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    # status command
    status_parser = subparsers.add_parser("status", help="Show database status")
    status_parser.set_defaults(func=cmd_status)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # account commands
    account_parser = subparsers.add_parser("account", help="Manage trust accounts")
    account_parser.set_defaults(func=_show_help(account_parser))
    account_subparsers = account_parser.add_subparsers(
        dest="account_command", help="Account commands"
    )

    account_create_parser = account_subparsers.add_parser(
        "create", help="Create a trust account"
    )
    account_create_parser.add_argument(
        "--property-id", type=_uuid_arg, required=True, help="Property ID"
    )
    account_create_parser.add_argument("--name", required=True, help="Account name")
    account_create_parser.add_argument(
        "--type",
        required=True,
        choices=[t.value for t in TrustAccountType],
        help="Account type",
    )
    account_create_parser.add_argument("--bank-name", help="Bank name")
    account_create_parser.add_argument("--account-number", help="Bank account number")
    account_create_parser.add_argument("--routing-number", help="Bank routing number")
    account_create_parser.add_argument(
        "--interest-rate", help="Annual interest rate in percent; makes it interest-bearing"
    )
    account_create_parser.add_argument("--user-id", type=_uuid_arg, help="Acting user ID")
    account_create_parser.set_defaults(func=cmd_account_create)

    account_list_parser = account_subparsers.add_parser(
        "list", help="List a property's trust accounts"
    )
    account_list_parser.add_argument(
        "--property-id", type=_uuid_arg, required=True, help="Property ID"
    )
    account_list_parser.add_argument(
        "--all", action="store_true", help="Include inactive accounts"
    )
    account_list_parser.add_argument(
        "--type", choices=[t.value for t in TrustAccountType], help="Filter by type"
    )
    account_list_parser.set_defaults(func=cmd_account_list)

    account_show_parser = account_subparsers.add_parser(
        "show", help="Show account details"
    )
    account_show_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    account_show_parser.set_defaults(func=cmd_account_show)

    account_update_parser = account_subparsers.add_parser(
        "update", help="Update account details"
    )
    account_update_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    account_update_parser.add_argument("--name", help="New name")
    account_update_parser.add_argument("--bank-name", help="New bank name")
    account_update_parser.add_argument("--account-number", help="New account number")
    account_update_parser.add_argument("--routing-number", help="New routing number")
    interest_group = account_update_parser.add_mutually_exclusive_group()
    interest_group.add_argument("--interest-rate", help="New annual interest rate")
    interest_group.add_argument(
        "--no-interest", action="store_true", help="Stop earning interest"
    )
    account_update_parser.set_defaults(func=cmd_account_update)

    account_deactivate_parser = account_subparsers.add_parser(
        "deactivate", help="Deactivate an empty account"
    )
    account_deactivate_parser.add_argument(
        "account_id", type=_uuid_arg, help="Account ID"
    )
    account_deactivate_parser.set_defaults(func=cmd_account_deactivate)

    # post commands
    post_parser = subparsers.add_parser("post", help="Post a transaction")
    post_parser.set_defaults(func=_show_help(post_parser))
    post_subparsers = post_parser.add_subparsers(
        dest="post_command", help="Transaction type"
    )
    for txn_type in TransactionType:
        type_parser = post_subparsers.add_parser(
            txn_type.value, help=f"Post a {txn_type.value}"
        )
        _add_posting_options(type_parser)
        type_parser.set_defaults(func=cmd_post)

    # transfer command
    transfer_parser = subparsers.add_parser(
        "transfer", help="Transfer funds between trust accounts"
    )
    transfer_parser.add_argument("from_account_id", type=_uuid_arg, help="Source account")
    transfer_parser.add_argument(
        "to_account_id", type=_uuid_arg, help="Destination account"
    )
    transfer_parser.add_argument("amount", help="Amount to transfer")
    transfer_parser.add_argument("--description", required=True, help="Description")
    transfer_parser.add_argument("--date", type=_date_arg, help="Transfer date")
    transfer_parser.add_argument("--reference", help="Reference number")
    transfer_parser.add_argument("--user-id", type=_uuid_arg, help="Acting user ID")
    transfer_parser.set_defaults(func=cmd_transfer)

    # transactions command
    transactions_parser = subparsers.add_parser(
        "transactions", help="List an account's transactions"
    )
    transactions_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    _add_period_options(transactions_parser)
    transactions_parser.add_argument(
        "--type", choices=[t.value for t in TransactionType], help="Filter by type"
    )
    transactions_parser.add_argument(
        "--unreconciled", action="store_true", help="Only unreconciled transactions"
    )
    transactions_parser.set_defaults(func=cmd_transactions)

    # reconcile command
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Mark transactions as reconciled"
    )
    reconcile_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    reconcile_parser.add_argument(
        "transaction_ids", type=_uuid_arg, nargs="+", help="Transaction IDs"
    )
    reconcile_parser.add_argument(
        "--user-id", type=_uuid_arg, required=True, help="Reconciling user ID"
    )
    reconcile_parser.add_argument("--date", type=_date_arg, help="Reconciliation date")
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # statement command
    statement_parser = subparsers.add_parser(
        "statement", help="Generate an account statement"
    )
    statement_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    _add_period_options(statement_parser)
    statement_parser.add_argument(
        "--format", choices=["json", "csv"], default="json", help="Output format"
    )
    statement_parser.add_argument("--output", "-o", help="Output file or directory")
    statement_parser.set_defaults(func=cmd_statement)

    # audit-report command
    audit_parser = subparsers.add_parser(
        "audit-report", help="Generate a property audit report"
    )
    audit_parser.add_argument("property_id", type=_uuid_arg, help="Property ID")
    _add_period_options(audit_parser)
    audit_parser.add_argument("--leases", help="JSON file of leases for compliance")
    audit_parser.set_defaults(func=cmd_audit_report)

    # deposit-balance command
    deposit_parser = subparsers.add_parser(
        "deposit-balance", help="Show a tenant's security deposit balance"
    )
    deposit_parser.add_argument("tenant_id", type=_uuid_arg, help="Tenant ID")
    deposit_parser.add_argument(
        "--leases",
        required=True,
        help="JSON file of leases used to find the tenant's property",
    )
    deposit_parser.set_defaults(func=cmd_deposit_balance)

    # interest commands
    interest_parser = subparsers.add_parser("interest", help="Monthly interest")
    interest_parser.set_defaults(func=_show_help(interest_parser))
    interest_subparsers = interest_parser.add_subparsers(
        dest="interest_command", help="Interest commands"
    )
    interest_accrue_parser = interest_subparsers.add_parser(
        "accrue", help="Accrue interest for one account"
    )
    interest_accrue_parser.add_argument("account_id", type=_uuid_arg, help="Account ID")
    interest_accrue_parser.add_argument("--as-of", type=_date_arg, help="As-of date")
    interest_accrue_parser.add_argument("--user-id", type=_uuid_arg, help="Acting user ID")
    interest_accrue_parser.set_defaults(func=cmd_interest_accrue)

    interest_apply_parser = interest_subparsers.add_parser(
        "apply", help="Accrue interest for every interest-bearing account"
    )
    interest_apply_parser.add_argument("--as-of", type=_date_arg, help="As-of date")
    interest_apply_parser.add_argument("--user-id", type=_uuid_arg, help="Acting user ID")
    interest_apply_parser.set_defaults(func=cmd_interest_apply)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(get_settings())
    with LogContext(command=args.command):
        try:
            result: int = args.func(args)
        except TrustLedgerError as e:
            logger.warning("command_failed", error=e.error_code)
            print(f"Error: {e.message}")
            return 1
    return result


if __name__ == "__main__":
    sys.exit(main())
