from flask import Flask, request, jsonify, send_file
from pathlib import Path
import sys, os
import logging

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from database.db import init_db, SessionLocal
from database.repository import PremiumRepository
from models.calculation import CalculationKind, RecalculationMode
from models.errors import PremiumCalculationError
from processors.calculation_lifecycle import CalculationLifecycleManager
from processors.calculation_exporter import CalculationExporter
from utils.validators import validate_period
from config.settings import OUTPUT_DIR, SECRET_KEY, DATA_DIR, DEBUG, LOG_LEVEL

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = SECRET_KEY
app.config['DEBUG'] = DEBUG
app.config['SESSION_FACTORY'] = SessionLocal
app.config['EXPORT_DIR'] = OUTPUT_DIR / 'exports'

DATA_DIR.mkdir(parents=True, exist_ok=True)

init_db()

ERROR_STATUS = {
    'RecordNotFound': 404,
    'AlreadyFinalized': 409,
    'InvalidStatusTransition': 409,
}


class Services:
    """Per-request session, repository and processors"""

    def __init__(self):
        self.db = app.config['SESSION_FACTORY']()
        self.repo = PremiumRepository(self.db)
        self.lifecycle = CalculationLifecycleManager(self.repo)

    def exporter(self) -> CalculationExporter:
        return CalculationExporter(self.repo, self.lifecycle, app.config['EXPORT_DIR'])

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.db.close()


def _period(data):
    if data.get('year') is None or data.get('month') is None:
        raise ValueError("year and month are required")
    year = int(data['year'])
    month = int(data['month'])
    if not validate_period(year, month):
        raise ValueError(f"Invalid period {year}-{month}")
    return year, month


def _kind(data) -> CalculationKind:
    return CalculationKind(data.get('kind', CalculationKind.MONTHLY.value))


def _actor(data) -> str:
    actor = data.get('actor')
    if not actor:
        raise ValueError("actor is required")
    return actor


@app.errorhandler(PremiumCalculationError)
def handle_calculation_error(e):
    return jsonify({
        'success': False,
        'error': e.kind,
        'message': e.message
    }), ERROR_STATUS.get(e.kind, 422)


@app.errorhandler(ValueError)
def handle_bad_request(e):
    return jsonify({
        'success': False,
        'error': 'BadRequest',
        'message': str(e)
    }), 400


# ============================================================================
# API Endpoints
# ============================================================================

@app.route('/api/employees')
def get_employees():
    """List employees; with a period, only those eligible for calculation"""
    organization_id = request.args['organization_id']
    with Services() as s:
        if request.args.get('year'):
            year, month = _period(request.args)
            employees = s.lifecycle.list_eligible_employees(organization_id, year, month)
        else:
            employees = s.repo.list_employees(organization_id)
        return jsonify([
            {
                'employee_id': e.employee_id,
                'employee_number': e.employee_number,
                'name': e.name,
                'standard_reward': e.standard_reward,
            }
            for e in employees
        ])


@app.route('/api/calculations/run', methods=['POST'])
def run_calculation():
    """Calculate one employee for one period"""
    data = request.json
    year, month = _period(data)
    with Services() as s:
        record = s.lifecycle.run_calculation(data['employee_id'], year, month, _actor(data), _kind(data))
        return jsonify({
            'success': True,
            'message': f'Calculated {record.employee_number} {record.period}',
            'calculation': record.to_dict()
        })


@app.route('/api/calculations/bulk', methods=['POST'])
def run_bulk():
    """Calculate every eligible employee of an organization"""
    data = request.json
    year, month = _period(data)
    with Services() as s:
        result = s.lifecycle.run_bulk(data['organization_id'], year, month, _actor(data), _kind(data))
        return jsonify({
            'success': True,
            'message': f'Calculated {len(result.calculations)} employees, skipped {len(result.skipped)}',
            'calculation_ids': [c.id for c in result.calculations],
            'skipped': [
                {'employee_number': sk.employee_number, 'error': sk.kind, 'message': sk.message}
                for sk in result.skipped
            ]
        })


@app.route('/api/calculations')
def list_calculations():
    args = request.args
    year, month = _period(args)
    with Services() as s:
        records = s.repo.list_calculations(args['organization_id'], _kind(args), year, month)
        return jsonify([r.to_dict() for r in records])


@app.route('/api/calculations/<int:calculation_id>')
def get_calculation(calculation_id):
    with Services() as s:
        return jsonify(s.lifecycle.get(calculation_id).to_dict())


@app.route('/api/calculations/<int:calculation_id>/confirm', methods=['POST'])
def confirm_calculation(calculation_id):
    data = request.json or {}
    with Services() as s:
        record = s.lifecycle.confirm(calculation_id, _actor(data))
        return jsonify({'success': True, 'message': 'Calculation confirmed', 'calculation': record.to_dict()})


@app.route('/api/calculations/confirm', methods=['POST'])
def confirm_calculations():
    data = request.json
    with Services() as s:
        result = s.lifecycle.confirm_many(data['calculation_ids'], _actor(data))
        return jsonify({
            'success': True,
            'message': f'Confirmed {len(result.calculations)} calculations',
            'skipped': [{'error': sk.kind, 'message': sk.message} for sk in result.skipped]
        })


@app.route('/api/calculations/<int:calculation_id>/recalculate', methods=['POST'])
def recalculate(calculation_id):
    data = request.json
    mode = RecalculationMode(data.get('mode', RecalculationMode.CURRENT.value))
    with Services() as s:
        record = s.lifecycle.recalculate(calculation_id, mode, _actor(data), data.get('reason'))
        return jsonify({'success': True, 'message': 'Calculation recalculated', 'calculation': record.to_dict()})


@app.route('/api/calculations/<int:calculation_id>/retroactive-deductions', methods=['POST'])
def apply_retroactive_deduction(calculation_id):
    """Carry the record's last recalculation difference into other months"""
    data = request.json
    target_months = [(int(y), int(m)) for y, m in data['target_months']]
    with Services() as s:
        record = s.lifecycle.get(calculation_id)
        if record.premium_difference is None:
            raise ValueError(f"Calculation {calculation_id} has no recalculation difference to apply")
        updated = s.lifecycle.apply_retroactive_deduction(
            calculation_id, target_months, record.premium_difference, _actor(data)
        )
        return jsonify({
            'success': True,
            'message': f'Applied to {len(updated)} calculations',
            'calculation_ids': [u.id for u in updated]
        })


@app.route('/api/calculations/<int:calculation_id>', methods=['DELETE'])
def delete_calculation(calculation_id):
    with Services() as s:
        s.lifecycle.delete(calculation_id)
        return jsonify({'success': True, 'message': 'Calculation deleted'})


@app.route('/api/summary')
def get_summary():
    args = request.args
    year, month = _period(args)
    with Services() as s:
        summary = s.lifecycle.summarize(args['organization_id'], _kind(args), year, month)
        return jsonify({
            'organization_id': summary.organization_id,
            'kind': summary.kind.value,
            'year': summary.year,
            'month': summary.month,
            'employee_count': summary.employee_count,
            'total_premium': str(summary.total_premium),
            'company_share': str(summary.company_share),
            'employee_share': str(summary.employee_share),
            'status_counts': summary.status_counts
        })


@app.route('/api/export', methods=['POST'])
def export_calculations():
    """Export finalized calculations as CSV or Excel and mark them exported"""
    data = request.json
    year, month = _period(data)
    fmt = data.get('format', 'csv')
    with Services() as s:
        exporter = s.exporter()
        if fmt == 'xlsx':
            filepath = exporter.export_workbook(data['organization_id'], _kind(data), year, month, _actor(data))
        elif fmt == 'csv':
            filepath = exporter.export_csv(data['organization_id'], _kind(data), year, month, _actor(data))
        else:
            raise ValueError(f"Unsupported export format: {fmt}")
        return jsonify({'success': True, 'message': 'Export generated', 'file': Path(filepath).name})


@app.route('/api/download/<path:filename>')
def download_file(filename):
    """Download a generated export"""
    filepath = Path(app.config['EXPORT_DIR']) / Path(filename).name
    if filepath.exists():
        return send_file(filepath, as_attachment=True)
    return jsonify({'success': False, 'message': 'File not found'}), 404


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=app.config['DEBUG'])
