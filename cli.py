import json
import logging
from dataclasses import fields
from datetime import datetime
from pathlib import Path

import click
import pandas as pd

from config.constants import DisbursementMethod, RequestStatus, StrategyKind
from config.policy import load_policy
from config.settings import EXCEL_FILE
from core import workflow
from core.approval import transition_request_status
from core.calculator import affordability_band
from core.comparison import build_comparison_matrix
from core.eligibility import check_topup_eligibility
from core.exceptions import TopUpError
from core.schedule import calc_effective_rate, generate_strategy_schedule
from core.statistics import has_pending_request, summarize_requests
from core.strategies import find_strategy, generate_strategies
from core.submission import TopUpWizardSession, calc_fees
from data_manager.excel_handler import (
    ExcelRequestStore,
    get_all_config,
    get_config,
    set_config,
)
from data_manager.schema import Loan, NetTopUpAllocation, RequirementsChecklist, SubmissionDetails

CHECKLIST_ITEMS = [f.name for f in fields(RequirementsChecklist)]


def _load_loan(loan_file) -> Loan:
    with open(loan_file, encoding="utf-8") as f:
        return Loan.from_record(json.load(f))


def _allocation(amount, applied):
    if applied is None:
        return None
    return NetTopUpAllocation.split(amount, applied)


@click.group()
@click.option('--data-file', type=click.Path(dir_okay=False), default=str(EXCEL_FILE), help='Workbook holding requests and config')
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, data_file, verbose):
    """A CLI for loan top-up requests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"data_file": Path(data_file)}


@cli.command('check-eligibility')
@click.option('--loan-file', type=click.Path(exists=True), required=True, help='Loan JSON file')
@click.pass_context
def check_eligibility(ctx, loan_file):
    """Checks whether a loan qualifies for a top-up."""
    loan = _load_loan(loan_file)
    verdict = check_topup_eligibility(loan, load_policy(ctx.obj["data_file"]))
    click.echo(f"Eligible: {'yes' if verdict.is_eligible else 'no'}")
    click.echo(f"Reason: {verdict.reason}")
    click.echo(f"Max top-up amount: {verdict.max_topup_amount:,.2f}")
    for name, result in verdict.criteria.items():
        mark = "pass" if result.passed else "fail"
        click.echo(f"  {name}: {mark} (value {result.value:g}, limit {result.limit:g})")
    if verdict.recommended_strategy is not None:
        click.echo(f"Recommended strategy: {verdict.recommended_strategy.label}")


@cli.command('strategies')
@click.option('--loan-file', type=click.Path(exists=True), required=True, help='Loan JSON file')
@click.option('--amount', type=float, required=True, help='Top-up amount')
@click.option('--tenure', type=int, help='Requested tenure in months')
@click.option('--applied', type=float, help='Net top-up part applied to the loan')
@click.pass_context
def strategies_command(ctx, loan_file, amount, tenure, applied):
    """Lists the top-up strategies for an amount."""
    loan = _load_loan(loan_file)
    policy = load_policy(ctx.obj["data_file"])
    try:
        strategies = generate_strategies(loan, amount, tenure, _allocation(amount, applied), policy)
    except TopUpError as e:
        raise click.ClickException(str(e))

    for s in strategies:
        flags = []
        if s.is_recommended:
            flags.append("recommended")
        if not s.is_available:
            flags.append("unavailable")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"--- {s.name}{suffix} ---")
        calc = s.calculations
        click.echo(f"Monthly payment: {calc.new_monthly_payment:,.2f}")
        click.echo(f"Cash to client: {calc.net_cash_to_client:,.2f}")
        click.echo(f"Total debt: {calc.total_debt:,.2f}")
        click.echo(f"Tenure: {calc.tenure} months, DTI: {calc.dti_ratio}% ({affordability_band(calc.dti_ratio)})")
        if s.unavailable_reason:
            click.echo(f"Unavailable: {s.unavailable_reason}")
        for w in s.warnings:
            click.echo(f"  ! {w}")


@cli.command('compare')
@click.option('--loan-file', type=click.Path(exists=True), required=True, help='Loan JSON file')
@click.option('--amount', type=float, required=True, help='Top-up amount')
@click.option('--tenure', type=int, help='Requested tenure in months')
@click.pass_context
def compare_command(ctx, loan_file, amount, tenure):
    """Compares the current loan with each available strategy."""
    loan = _load_loan(loan_file)
    try:
        strategies = generate_strategies(loan, amount, tenure, policy=load_policy(ctx.obj["data_file"]))
    except TopUpError as e:
        raise click.ClickException(str(e))
    click.echo("--- Key Metrics Comparison ---")
    click.echo(build_comparison_matrix(loan, strategies).to_string(index=False))


@cli.command('schedule')
@click.option('--loan-file', type=click.Path(exists=True), required=True, help='Loan JSON file')
@click.option('--amount', type=float, required=True, help='Top-up amount')
@click.option('--strategy', type=click.Choice([e.value for e in StrategyKind]), required=True, help='Strategy')
@click.option('--tenure', type=int, help='Requested tenure in months')
@click.option('--start-date', type=str, required=True, help='Start date (YYYY-MM-DD)')
@click.option('--repayment-day', type=int, default=1, help='Repayment day')
@click.pass_context
def schedule_command(ctx, loan_file, amount, strategy, tenure, start_date, repayment_day):
    """Generates the new loan's repayment schedule and outputs it as CSV."""
    loan = _load_loan(loan_file)
    policy = load_policy(ctx.obj["data_file"])
    start_date_obj = datetime.strptime(start_date, '%Y-%m-%d').date()
    try:
        strategies = generate_strategies(loan, amount, tenure, policy=policy)
    except TopUpError as e:
        raise click.ClickException(str(e))

    chosen = find_strategy(strategies, StrategyKind(strategy))
    if chosen is None or not chosen.is_available:
        raise click.ClickException(f"{StrategyKind(strategy).label} is not available for this amount")

    schedule = generate_strategy_schedule(loan, chosen, start_date_obj, repayment_day)
    click.echo(schedule.to_csv(index=False))
    fees = calc_fees(amount, policy)
    rate = calc_effective_rate(loan, chosen, fees.processing_fee + fees.insurance_fee, start_date_obj)
    click.echo(f"Effective annual rate: {rate:.4f}%")


@cli.command('submit')
@click.option('--loan-file', type=click.Path(exists=True), required=True, help='Loan JSON file')
@click.option('--amount', type=float, required=True, help='Top-up amount')
@click.option('--strategy', type=click.Choice([e.value for e in StrategyKind]), required=True, help='Strategy')
@click.option('--tenure', type=int, help='Requested tenure in months')
@click.option('--applied', type=float, help='Net top-up part applied to the loan')
@click.option('--method', type=click.Choice([e.value for e in DisbursementMethod]), default='mpesa', help='Disbursement method')
@click.option('--details', type=str, default='{}', help='Disbursement details in JSON format')
@click.option('--actor', type=str, required=True, help='Submitting staff user')
@click.option('--checklist', type=click.Choice(CHECKLIST_ITEMS), multiple=True, help='Completed requirement (repeatable)')
@click.option('--notes', type=str, help='Staff notes')
@click.pass_context
def submit_command(ctx, loan_file, amount, strategy, tenure, applied, method, details, actor, checklist, notes):
    """Runs the top-up wizard and submits the request for approval."""
    loan = _load_loan(loan_file)
    store = ExcelRequestStore(ctx.obj["data_file"])
    policy = load_policy(ctx.obj["data_file"])

    if has_pending_request(store.list_requests(client_id=loan.client_id), loan.client_id):
        raise click.ClickException(f"Client {loan.client_id} already has a pending top-up request")

    session = TopUpWizardSession(loan, store, policy)
    if not session.state.verdict.is_eligible:
        raise click.ClickException(session.state.verdict.reason)

    try:
        session.edit(
            topup_amount=amount,
            requested_tenure=workflow.UNSET if tenure is None else tenure,
        )
        if applied is not None:
            session.set_allocation(applied)
        for step in (session.next, lambda: session.select(strategy), session.next):
            transition = step()
            if not transition.accepted:
                raise click.ClickException(transition.reason)
        session.set_details(SubmissionDetails(
            disbursement_method=method,
            disbursement_details=json.loads(details),
            requirements_checklist=RequirementsChecklist(**{item: True for item in checklist}),
            staff_notes=notes,
        ))
        transition = session.next()
        if not transition.accepted:
            raise click.ClickException(transition.reason)
        result = session.submit(actor)
    except TopUpError as e:
        raise click.ClickException(str(e))

    request = result.request
    click.echo(f"Request {request['request_number']} submitted ({request['status']}).")
    click.echo(f"Net disbursement: {request['net_disbursement']:,.2f}")
    if request["requires_dti_override"]:
        click.echo("DTI override recorded.")


@cli.command('list-requests')
@click.option('--status', type=click.Choice([e.value for e in RequestStatus]), help='Filter by status')
@click.option('--client-id', type=str, help='Filter by client')
@click.pass_context
def list_requests(ctx, status, client_id):
    """Lists top-up requests."""
    requests = ExcelRequestStore(ctx.obj["data_file"]).list_requests(status, client_id)
    if not requests:
        click.echo("No top-up requests found.")
        return
    df = pd.DataFrame(requests)
    click.echo(df[["request_number", "client_id", "requested_amount", "selected_strategy", "status"]].to_string(index=False))


@cli.command('update-status')
@click.option('--request-id', type=str, required=True, help='Request ID')
@click.option('--status', type=click.Choice([e.value for e in RequestStatus]), required=True, help='New status')
@click.option('--actor', type=str, required=True, help='Reviewing staff user')
@click.option('--comments', type=str, help='Review comments')
@click.pass_context
def update_status(ctx, request_id, status, actor, comments):
    """Moves a request along the approval pipeline."""
    store = ExcelRequestStore(ctx.obj["data_file"])
    try:
        request = transition_request_status(store, request_id, status, actor, comments)
    except TopUpError as e:
        raise click.ClickException(str(e))
    click.echo(f"Request {request['request_number']} is now {RequestStatus(request['status']).label}.")


@cli.command('stats')
@click.pass_context
def stats(ctx):
    """Shows request counts by status."""
    summary = summarize_requests(ExcelRequestStore(ctx.obj["data_file"]).list_requests())
    for key, value in summary.items():
        click.echo(f"{key}: {value}")


@cli.command('list-configs')
@click.pass_context
def list_configs(ctx):
    """Lists all system configurations."""
    click.echo(get_all_config(ctx.obj["data_file"]).to_string())


@cli.command('get-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.pass_context
def get_config_command(ctx, key):
    """Gets a system configuration by its key."""
    value = get_config(key, ctx.obj["data_file"])
    if value is not None:
        click.echo(value)
    else:
        click.echo(f"Config with key '{key}' not found.")


@cli.command('set-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.option('--value', type=str, required=True, help='Config value')
@click.option('--description', type=str, default='', help='Description')
@click.pass_context
def set_config_command(ctx, key, value, description):
    """Sets a system configuration."""
    set_config(key, value, description, ctx.obj["data_file"])
    click.echo(f"Config with key '{key}' set successfully.")


if __name__ == "__main__":
    cli()
