"""Azure Function entry points for the student account sync.

Provides two triggers:
  - HTTP trigger (POST /api/sync) for on-demand runs
  - Timer trigger for the nightly run

Bulk deactivations above REQUIRE_CONFIRMATION_THRESHOLD are never
confirmed here; such runs are cancelled and must be applied from the CLI.
"""

import json
import logging
import sys
from pathlib import Path

import azure.functions as func

# Add src to path so the roster_sync package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from roster_sync.config import Config
from roster_sync.directory.admin import DirectoryService
from roster_sync.directory.auth import DirectoryAuth
from roster_sync.directory.client import DirectoryClient
from roster_sync.engine.models import PlanMode, SyncSummary
from roster_sync.engine.roster import RosterParser
from roster_sync.orchestrator.gate import never_confirm
from roster_sync.orchestrator.pipeline import RunContext, SyncPipeline

app = func.FunctionApp()


def _run(mode: PlanMode = PlanMode.ALL, dry_run: bool = None) -> SyncSummary:
    config = Config.from_env()
    config.mode = mode
    if dry_run is not None:
        config.dry_run = dry_run
    config.validate()

    missing = config.missing_credentials()
    if missing:
        raise RuntimeError(f"Missing settings: {', '.join(missing)}")

    auth = DirectoryAuth(config.service_account_key_file, config.delegated_user)
    client = DirectoryClient(
        auth,
        max_retries=config.retry_attempts,
        retry_delay=config.retry_delay_ms / 1000,
    )
    directory = DirectoryService(client, config.domain)
    students = RosterParser().parse_file(config.roster_file)
    context = RunContext(config=config, confirm=never_confirm)
    return SyncPipeline(directory, students, context).run()


def _summary_json(summary: SyncSummary) -> dict:
    return {
        "runId": summary.run_id,
        "planned": summary.planned,
        "processed": summary.total_processed,
        "failed": summary.error_count,
        "cancelled": summary.cancelled,
        "counts": {t.value: n for t, n in summary.counts.items()},
        "errors": [
            {"action": r.action.type.value, "student": r.action.student.label, "error": r.error_message}
            for r in summary.failures
        ],
        "orgUnitErrors": summary.org_node_errors,
    }


@app.route(route="sync", methods=["POST"], auth_level=func.AuthLevel.FUNCTION)
def manual_trigger(req: func.HttpRequest) -> func.HttpResponse:
    """HTTP trigger for on-demand runs.

    POST body (optional):
    {
        "mode": "create-only",   // all, create-only, move-only, deactivate-only
        "dryRun": true
    }
    """
    logging.info("Manual student sync triggered")

    body = {}
    try:
        body = req.get_json()
    except ValueError:
        pass

    try:
        mode = PlanMode(body.get("mode") or PlanMode.ALL.value)
    except ValueError:
        return func.HttpResponse(
            json.dumps({"error": f"Unknown mode: {body.get('mode')}"}),
            mimetype="application/json",
            status_code=400,
        )

    try:
        summary = _run(mode=mode, dry_run=body.get("dryRun"))
        return func.HttpResponse(
            json.dumps(_summary_json(summary)),
            mimetype="application/json",
            status_code=200,
        )
    except Exception as e:
        logging.exception("Student sync failed")
        return func.HttpResponse(
            json.dumps({"error": str(e)}),
            mimetype="application/json",
            status_code=500,
        )


# Timer: runs at 2:00 AM every day
@app.timer_trigger(
    schedule="0 0 2 * * *",
    arg_name="timer",
    run_on_startup=False,
)
def nightly_student_sync(timer: func.TimerRequest) -> None:
    """Scheduled nightly sync."""
    logging.info("Starting scheduled student sync")

    try:
        summary = _run()
        logging.info(
            f"Nightly run complete: {summary.total_processed - summary.error_count} succeeded, "
            f"{summary.error_count} failed out of {summary.planned}"
        )
    except Exception:
        logging.exception("Scheduled student sync failed")
        raise
