"""
Profitability routes — cron trigger, per-machine latest snapshot + diff, health check.
"""
import hmac
import logging
import re
from datetime import datetime

from flask import Blueprint, jsonify, request

from minerchecker.config import APP_ENV, CRON_SECRET
from minerchecker.database import get_session
from minerchecker.models.snapshot import ProfitabilitySnapshot
from minerchecker.profitability.costs import compute_user_profit_from_snapshot
from minerchecker.profitability.diff import get_machine_profitability_diff
from minerchecker.profitability.errors import RunAbortedError
from minerchecker.profitability.units import to_finite
from minerchecker.services import run_queue

logger = logging.getLogger('routes.profitability')

bp = Blueprint('profitability', __name__)

_BEARER = re.compile(r'^Bearer\s+(.+)$', re.IGNORECASE)


def _is_authorized(req) -> bool:
    secret = (CRON_SECRET or '').strip()
    if not secret:
        return APP_ENV != 'production'

    supplied = [
        (req.headers.get('X-Cron-Secret') or '').strip(),
        (req.args.get('secret') or '').strip(),
    ]
    m = _BEARER.match((req.headers.get('Authorization') or '').strip())
    if m:
        supplied.append(m.group(1).strip())
    return any(s and hmac.compare_digest(s, secret) for s in supplied)


def _run_params(req) -> dict:
    """Optional run overrides from the query string and/or JSON body. Raises ValueError."""
    data = req.args.to_dict()
    if req.is_json:
        data.update(req.get_json(silent=True) or {})

    params = {}
    ids = data.get('machine_ids')
    if ids:
        if isinstance(ids, str):
            ids = [s for s in (p.strip() for p in ids.split(',')) if s]
        params['machine_ids'] = [str(i) for i in ids]

    for name in ('electricity_usd_per_kwh', 'pool_fee_pct', 'hosting_usd_per_day'):
        if data.get(name) not in (None, ''):
            value = to_finite(data[name])
            if value is None:
                raise ValueError(f'{name} must be a number')
            params[name] = value

    if data.get('computed_at'):
        params['computed_at'] = datetime.fromisoformat(str(data['computed_at']).replace('Z', '+00:00'))
    return params


# ── Cron trigger ─────────────────────────────────────────────────────────────

@bp.route('/api/cron/profitability', methods=['GET', 'POST'])
def cron_profitability():
    """Compute one hour bucket of snapshots (inline, or on RQ with ?async=1)."""
    if not _is_authorized(request):
        return jsonify({'ok': False, 'error': 'Unauthorized'}), 401

    try:
        params = _run_params(request)
    except ValueError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400

    try:
        token = run_queue.acquire_run_lock()
    except Exception as e:
        logger.error("Run lock unavailable: %s", e)
        return jsonify({'ok': False, 'error': 'Run lock unavailable'}), 503
    if token is None:
        return jsonify({'ok': False, 'error': 'A profitability run is already in progress'}), 409

    if request.args.get('async') in ('1', 'true', 'yes'):
        try:
            job = run_queue.enqueue_run(token, params)
        except Exception as e:
            run_queue.release_run_lock(token)
            logger.error("Failed to enqueue profitability run: %s", e)
            return jsonify({'ok': False, 'error': 'Failed to enqueue run'}), 503
        return jsonify({'ok': True, 'status': 'queued', 'job_id': job.id}), 202

    try:
        summary = run_queue.run_locked(token, **params)
    except RunAbortedError as e:
        body = {'ok': False, 'error': str(e), 'failed_phase': e.phase}
        if e.summary is not None:
            body['summary'] = e.summary.to_dict()
        return jsonify(body), 500
    except Exception as e:
        logger.error("Profitability run failed", exc_info=True)
        return jsonify({'ok': False, 'error': str(e)}), 500

    return jsonify(summary.to_dict())


# ── Per-machine reads ────────────────────────────────────────────────────────

@bp.route('/api/machines/<machine_id>/profitability')
def machine_profitability(machine_id):
    """Latest snapshot, optionally rescaled to the caller's electricity price."""
    session = get_session()
    try:
        snap = (
            session.query(ProfitabilitySnapshot)
            .filter(ProfitabilitySnapshot.machine_id == machine_id)
            .order_by(ProfitabilitySnapshot.computed_at.desc())
            .first()
        )
        if snap is None:
            return jsonify({'error': 'No profitability snapshot for machine'}), 404

        body = snap.to_dict()
        electricity = request.args.get('electricity')
        if electricity not in (None, ''):
            user_rate = to_finite(electricity)
            if user_rate is None or user_rate < 0:
                return jsonify({'error': 'electricity must be a non-negative number'}), 400
            body['user'] = {
                'electricity_usd_per_kwh': user_rate,
                **compute_user_profit_from_snapshot(
                    body['revenue_usd_per_day'],
                    body['electricity_usd_per_day'],
                    body['electricity_usd_per_kwh'],
                    user_rate,
                ),
            }
        return jsonify(body)
    finally:
        session.close()


@bp.route('/api/machines/<machine_id>/profitability/diff')
def machine_profitability_diff(machine_id):
    lookback = request.args.get('lookback_days', 3, type=int)
    diff = get_machine_profitability_diff(machine_id, lookback_days=max(1, min(lookback, 30)))
    if diff is None:
        return jsonify({'error': 'Not enough snapshot history'}), 404
    return jsonify(diff.to_dict())


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200
