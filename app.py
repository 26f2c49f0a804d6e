import os
import json
import logging
from typing import Optional, Dict, Any
from decimal import Decimal
from datetime import date, datetime
from functools import wraps

from flask import (
    Flask, Blueprint, Response, request, jsonify, session, redirect, send_from_directory,
    make_response, current_app
)
from flask_cors import CORS
from flask_session import Session
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from storage import Storage, DuplicateRecordError
from models import (
    CATEGORIES, UpsertUserSchema,
    InsertTransactionSchema, UpdateTransactionSchema,
    InsertBudgetSchema, UpdateBudgetSchema,
    InsertLoanSchema, UpdateLoanSchema, InsertLoanPaymentSchema, UpdateLoanPaymentSchema,
    InsertLendingSchema, UpdateLendingSchema,
    InsertRecurringSchema, UpdateRecurringSchema,
    UpdateSettingsSchema, EMICalculationSchema
)
from statement_parser import (
    parse_statement, make_external_id, UnsupportedFileError, StatementParseError, MAX_ERRORS
)
from categorizer import categorize_with_fallback, suggest_category, apply_categories
from ai_assistant import (
    AIServiceError, create_openai_client, chat, stream_chat, parse_expense, suggest_budgets
)
from finance_calc import (
    calculate_emi, calculate_total_interest, generate_emi_schedule, split_payment,
    current_outstanding, loan_progress, emi_summary,
    calculate_all_budget_utilizations, calculate_financial_summary,
    group_transactions_by_category, calculate_monthly_totals,
    aggregate_lending_by_person, calculate_lending_summary,
    aggregate_investments_by_category, get_investment_risk_level,
    current_month_range, last_n_months_range, date_range_presets, parse_date_range,
    filter_by_date_range, available_months, spending_insights
)
from recurring import mark_paid, classify_due, detect_recurring
from health_score import health_score_from_data
import reports

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DEMO_USER = {
    'sub': 'demo-user-123',
    'email': 'demo@fintrack.app',
    'first_name': 'Demo',
    'last_name': 'User',
    'profile_image_url': None
}

AI_UNAVAILABLE = "AI features are currently unavailable. Please configure OPENAI_API_KEY environment variable."


def _env_bool(value, default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    env = os.environ
    config = {
        'DATABASE_URL': env.get('DATABASE_URL', 'sqlite:///fintrack.db'),
        'SECRET_KEY': env.get('SESSION_SECRET', 'dev-secret-key'),
        'SESSION_TYPE': env.get('SESSION_TYPE', 'filesystem'),
        'SESSION_FILE_DIR': env.get('SESSION_FILE_DIR', os.path.join(os.getcwd(), 'flask_session')),
        'SESSION_COOKIE_SECURE': _env_bool(env.get('SESSION_COOKIE_SECURE'), True),
        'OPENAI_API_KEY': env.get('OPENAI_API_KEY'),
        'OPENAI_BASE_URL': env.get('OPENAI_BASE_URL'),
        'AI_MODEL': env.get('AI_MODEL', 'gpt-4o-mini'),
        'AI_TIMEOUT': float(env.get('AI_TIMEOUT', 30)),
        'AI_MAX_RETRIES': int(env.get('AI_MAX_RETRIES', 2)),
        'AI_BATCH_SIZE': int(env.get('AI_BATCH_SIZE', 50)),
        'MAX_CONTENT_LENGTH': int(env.get('MAX_CONTENT_LENGTH', 10 * 1024 * 1024)),
        'LOG_LEVEL': env.get('LOG_LEVEL', 'INFO'),
        'STATIC_FOLDER': env.get('STATIC_FOLDER', os.path.join(BASE_DIR, 'dist', 'public')),
    }
    config.update(overrides or {})
    return config


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    load_dotenv()
    settings = load_config(config)
    openai_client = settings.pop('OPENAI_CLIENT', None)

    logging.basicConfig(
        level=getattr(logging, str(settings['LOG_LEVEL']).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # dist/public is served by `serve` alone
    app = Flask(__name__, static_folder=None)
    app.config.update(settings)
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    Session(app)
    CORS(app, supports_credentials=True)

    storage = Storage(app.config['DATABASE_URL'])
    storage.create_all()
    app.extensions['storage'] = storage

    if openai_client is None:
        openai_client = create_openai_client(
            app.config['OPENAI_API_KEY'],
            base_url=app.config['OPENAI_BASE_URL'],
            timeout=app.config['AI_TIMEOUT'],
            max_retries=app.config['AI_MAX_RETRIES']
        )
    app.extensions['openai'] = openai_client

    app.register_blueprint(api)

    @app.errorhandler(413)
    def too_large(e):
        limit_mb = app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)
        return jsonify({"message": f"File too large. Maximum upload size is {limit_mb} MB."}), 413

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def serve(path):
        if path.startswith('api/'):
            return jsonify({"message": "Not found"}), 404
        static_folder = app.config['STATIC_FOLDER']
        if path and os.path.isfile(os.path.join(static_folder, path)):
            return send_from_directory(static_folder, path)
        return send_from_directory(static_folder, 'index.html')

    logger.info("FinTrack API ready (database=%s, ai=%s)",
                app.config['DATABASE_URL'].split('://')[0], openai_client is not None)
    return app


api = Blueprint('api', __name__)


def get_storage() -> Storage:
    return current_app.extensions['storage']


def get_ai_client():
    return current_app.extensions.get('openai')


def is_authenticated(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user' not in session:
            return jsonify({"message": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated_function


def get_user_id() -> Optional[str]:
    user = session.get('user')
    if user and isinstance(user, dict):
        return user.get('sub')
    return None


def model_to_dict(obj):
    if hasattr(obj, '__dict__'):
        result = {}
        for key, value in obj.__dict__.items():
            if key.startswith('_'):
                continue
            if isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, (date, datetime)):
                result[key] = value.isoformat()
            else:
                result[key] = value
        return result
    return obj


def models_to_dicts(objects):
    return [model_to_dict(obj) for obj in objects]


def validation_error(e: ValidationError):
    return jsonify({
        "message": "Validation error",
        "errors": e.errors(include_url=False, include_context=False)
    }), 400


def get_json() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def period_from_args(default=None):
    return parse_date_range(
        request.args.get('start_date'),
        request.args.get('end_date'),
        request.args.get('month')
    ) or default


def period_label(period) -> Optional[str]:
    if period is None:
        return None
    start = 'Beginning' if period.start == date.min else period.start.isoformat()
    end = 'Present' if period.end == date.max else period.end.isoformat()
    return f"{start} to {end}"


def file_response(content, filename: str, content_type: str):
    response = make_response(content)
    response.headers['Content-Disposition'] = f'attachment; filename={filename}'
    response.headers['Content-Type'] = content_type
    return response


# Auth & health

@api.route('/api/health')
def health():
    return jsonify({"status": "ok", "ai": get_ai_client() is not None})


@api.route('/api/logout')
def logout():
    session.clear()
    return redirect('/')


@api.route('/api/demo-login', methods=['POST'])
def demo_login():
    try:
        session['user'] = dict(DEMO_USER)
        get_storage().upsert_user(UpsertUserSchema(
            id=DEMO_USER['sub'],
            email=DEMO_USER['email'],
            first_name=DEMO_USER['first_name'],
            last_name=DEMO_USER['last_name'],
            profile_image_url=None
        ))
        return jsonify({"success": True, "message": "Demo login successful"})
    except Exception:
        logger.exception("Demo login error")
        return jsonify({"success": False, "message": "Failed to create demo session"}), 500


@api.route('/api/auth/user')
@is_authenticated
def get_auth_user():
    try:
        user = get_storage().get_user(get_user_id())
        if user:
            return jsonify(model_to_dict(user))
        return jsonify({"message": "User not found"}), 404
    except Exception:
        logger.exception("Error fetching user")
        return jsonify({"message": "Failed to fetch user"}), 500


# Settings & categories

@api.route('/api/settings', methods=['GET'])
@is_authenticated
def get_settings():
    try:
        return jsonify(model_to_dict(get_storage().get_settings(get_user_id())))
    except Exception:
        logger.exception("Error fetching settings")
        return jsonify({"message": "Failed to fetch settings"}), 500


@api.route('/api/settings', methods=['PATCH'])
@is_authenticated
def update_settings():
    try:
        data = UpdateSettingsSchema(**get_json()).model_dump(exclude_unset=True)
        settings = get_storage().update_settings(get_user_id(), data)
        return jsonify(model_to_dict(settings))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating settings")
        return jsonify({"message": "Failed to update settings"}), 500


@api.route('/api/categories', methods=['GET'])
@is_authenticated
def get_categories():
    category_type = request.args.get('type')
    if not category_type:
        return jsonify(CATEGORIES)
    return jsonify([
        c for c in CATEGORIES
        if c['type'] == category_type or (c['type'] == 'both' and category_type in ('expense', 'income'))
    ])


# Transactions

@api.route('/api/transactions', methods=['POST'])
@is_authenticated
def create_transaction():
    try:
        user_id = get_user_id()
        data = get_json()
        data['user_id'] = user_id
        validated_data = InsertTransactionSchema(**data)
        if validated_data.loan_id and not get_storage().get_loan_by_id(user_id, validated_data.loan_id):
            return jsonify({"message": "Loan not found"}), 400
        transaction = get_storage().create_transaction(validated_data)
        return jsonify(model_to_dict(transaction)), 201
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error creating transaction")
        return jsonify({"message": "Failed to create transaction"}), 500


@api.route('/api/transactions', methods=['GET'])
@is_authenticated
def get_transactions():
    try:
        period = period_from_args()
        limit = request.args.get('limit', type=int)
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(),
            start_date=period.start if period else None,
            end_date=period.end if period else None,
            type=request.args.get('type'),
            category=request.args.get('category'),
            loan_id=request.args.get('loan_id'),
            search=request.args.get('search'),
            limit=limit if limit and limit > 0 else None
        )
        return jsonify(models_to_dicts(transactions))
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error fetching transactions")
        return jsonify({"message": "Failed to fetch transactions"}), 500


@api.route('/api/transactions/months', methods=['GET'])
@is_authenticated
def get_transaction_months():
    try:
        return jsonify(available_months(get_storage().get_transaction_months(get_user_id())))
    except Exception:
        logger.exception("Error fetching transaction months")
        return jsonify({"message": "Failed to fetch months"}), 500


@api.route('/api/transactions/detail/<transaction_id>', methods=['GET'])
@is_authenticated
def get_transaction_detail(transaction_id):
    try:
        transaction = get_storage().get_transaction_by_id(get_user_id(), transaction_id)
        if not transaction:
            return jsonify({"message": "Transaction not found"}), 404
        return jsonify(model_to_dict(transaction))
    except Exception:
        logger.exception("Error fetching transaction")
        return jsonify({"message": "Failed to fetch transaction"}), 500


@api.route('/api/transactions/<transaction_id>', methods=['PATCH'])
@is_authenticated
def update_transaction(transaction_id):
    try:
        user_id = get_user_id()
        data = UpdateTransactionSchema(**get_json()).model_dump(exclude_unset=True)
        if data.get('loan_id') and not get_storage().get_loan_by_id(user_id, data['loan_id']):
            return jsonify({"message": "Loan not found"}), 400
        transaction = get_storage().update_transaction(user_id, transaction_id, data)
        if not transaction:
            return jsonify({"message": "Transaction not found"}), 404
        return jsonify(model_to_dict(transaction))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating transaction")
        return jsonify({"message": "Failed to update transaction"}), 500


@api.route('/api/transactions/<transaction_id>', methods=['DELETE'])
@is_authenticated
def delete_transaction(transaction_id):
    try:
        if not get_storage().delete_transaction(get_user_id(), transaction_id):
            return jsonify({"message": "Transaction not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting transaction")
        return jsonify({"message": "Failed to delete transaction"}), 500


# Statement imports

def _read_upload():
    if 'file' not in request.files:
        raise StatementParseError("No file uploaded")
    file = request.files['file']
    if not file.filename:
        raise StatementParseError("No file selected")
    try:
        column_mapping = json.loads(request.form.get('columnMapping') or '{}')
    except json.JSONDecodeError as e:
        raise StatementParseError("columnMapping must be a JSON object") from e
    if not isinstance(column_mapping, dict):
        raise StatementParseError("columnMapping must be a JSON object")
    categorize = request.form.get('categorize', 'true').lower() not in ('0', 'false', 'no')
    return file.filename, file.read(), column_mapping, categorize


def _categorized_rows(result, categorize: bool):
    rows = [t.to_dict() for t in result.transactions]
    pending = [row for row in rows if not row.get('category')]
    if pending and categorize:
        results = categorize_with_fallback(
            pending, get_ai_client(),
            model=current_app.config['AI_MODEL'],
            batch_size=current_app.config['AI_BATCH_SIZE']
        )
        apply_categories(pending, results)
    for row in rows:
        row['category'] = row.get('category') or 'Other'
    return rows


def _store_rows(user_id: str, rows, source: str):
    """Validate rows and bulk insert; returns (imported, duplicates, errors)."""
    to_create, errors = [], []
    for idx, row in enumerate(rows):
        line = row.get('row') or idx + 1
        try:
            to_create.append(InsertTransactionSchema(
                user_id=user_id,
                type=row.get('type'),
                amount=row.get('amount'),
                category=row.get('category') or 'Other',
                description=row.get('description'),
                date=row.get('date'),
                source=source,
                confidence=row.get('confidence'),
                external_id=make_external_id(user_id, row)
            ))
        except (ValidationError, ArithmeticError, TypeError, ValueError) as e:
            errors.append({"row": line, "message": f"Validation error: {e}"})

    created = get_storage().bulk_create_transactions(user_id, to_create) if to_create else []
    return len(created), len(to_create) - len(created), errors


@api.route('/api/imports/preview', methods=['POST'])
@is_authenticated
def preview_import():
    try:
        filename, data, column_mapping, categorize = _read_upload()
        result = parse_statement(filename, data, column_mapping)
        rows = _categorized_rows(result, categorize)
        return jsonify({
            "transactions": rows,
            "errors": result.errors[:MAX_ERRORS],
            "skipped": result.skipped,
            "mapping": result.mapping,
            "total": len(rows)
        })
    except (UnsupportedFileError, StatementParseError) as e:
        return jsonify({"message": str(e)}), 400
    except HTTPException:
        raise
    except Exception:
        logger.exception("Import preview error")
        return jsonify({"message": "Failed to read statement"}), 500


@api.route('/api/imports/transactions', methods=['POST'])
@is_authenticated
def import_transactions():
    try:
        user_id = get_user_id()
        filename, data, column_mapping, categorize = _read_upload()
        result = parse_statement(filename, data, column_mapping)
        rows = _categorized_rows(result, categorize)
        source = 'excel' if filename.lower().endswith('.xlsx') else 'csv'
        imported, duplicates, errors = _store_rows(user_id, rows, source)
        return jsonify({
            "imported": imported,
            "skipped": result.skipped + duplicates,
            "errors": (result.errors + errors)[:MAX_ERRORS]
        })
    except (UnsupportedFileError, StatementParseError) as e:
        return jsonify({"message": str(e)}), 400
    except HTTPException:
        raise
    except Exception:
        logger.exception("Import error")
        return jsonify({"message": "Failed to import transactions"}), 500


@api.route('/api/imports/confirm', methods=['POST'])
@is_authenticated
def confirm_import():
    try:
        data = get_json()
        rows = data.get('transactions')
        if not rows or not isinstance(rows, list):
            return jsonify({"message": "No transactions provided"}), 400
        source = data.get('source') if data.get('source') in ('csv', 'excel') else 'csv'
        rows = [row for row in rows if isinstance(row, dict)]
        imported, duplicates, errors = _store_rows(get_user_id(), rows, source)
        return jsonify({"imported": imported, "skipped": duplicates, "errors": errors[:MAX_ERRORS]})
    except Exception:
        logger.exception("Import confirm error")
        return jsonify({"message": "Failed to import transactions"}), 500


# Budgets

@api.route('/api/budgets', methods=['POST'])
@is_authenticated
def create_budget():
    try:
        data = get_json()
        data['user_id'] = get_user_id()
        budget = get_storage().create_budget(InsertBudgetSchema(**data))
        return jsonify(model_to_dict(budget)), 201
    except ValidationError as e:
        return validation_error(e)
    except DuplicateRecordError as e:
        return jsonify({"message": str(e)}), 409
    except Exception:
        logger.exception("Error creating budget")
        return jsonify({"message": "Failed to create budget"}), 500


@api.route('/api/budgets', methods=['GET'])
@is_authenticated
def get_budgets():
    try:
        return jsonify(models_to_dicts(get_storage().get_budgets_by_user_id(get_user_id())))
    except Exception:
        logger.exception("Error fetching budgets")
        return jsonify({"message": "Failed to fetch budgets"}), 500


@api.route('/api/budgets/utilization', methods=['GET'])
@is_authenticated
def get_budget_utilization():
    try:
        user_id = get_user_id()
        period = period_from_args(current_month_range())
        budgets = get_storage().get_budgets_by_user_id(user_id)
        transactions = get_storage().get_transactions_by_user_id(
            user_id, start_date=period.start, end_date=period.end, type='expense'
        )
        utilizations = calculate_all_budget_utilizations(budgets, transactions, period)
        total_limit = sum(u['budgetLimit'] for u in utilizations)
        total_spent = sum(u['spent'] for u in utilizations)
        return jsonify({
            "period": period.to_dict(),
            "budgets": utilizations,
            "totalBudget": round(total_limit, 2),
            "totalSpent": round(total_spent, 2),
            "alerts": [u for u in utilizations if u['status'] != 'safe']
        })
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error calculating budget utilization")
        return jsonify({"message": "Failed to calculate budget utilization"}), 500


@api.route('/api/budgets/<budget_id>', methods=['PATCH'])
@is_authenticated
def update_budget(budget_id):
    try:
        data = UpdateBudgetSchema(**get_json()).model_dump(exclude_unset=True)
        budget = get_storage().update_budget(get_user_id(), budget_id, data)
        if not budget:
            return jsonify({"message": "Budget not found"}), 404
        return jsonify(model_to_dict(budget))
    except ValidationError as e:
        return validation_error(e)
    except DuplicateRecordError as e:
        return jsonify({"message": str(e)}), 409
    except Exception:
        logger.exception("Error updating budget")
        return jsonify({"message": "Failed to update budget"}), 500


@api.route('/api/budgets/<budget_id>', methods=['DELETE'])
@is_authenticated
def delete_budget(budget_id):
    try:
        if not get_storage().delete_budget(get_user_id(), budget_id):
            return jsonify({"message": "Budget not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting budget")
        return jsonify({"message": "Failed to delete budget"}), 500


# Loans & EMIs

@api.route('/api/loans', methods=['POST'])
@is_authenticated
def create_loan():
    try:
        data = get_json()
        data['user_id'] = get_user_id()
        validated_data = InsertLoanSchema(**data)
        emi = calculate_emi(validated_data.principal_amount, validated_data.interest_rate,
                            validated_data.tenure_months)
        loan = get_storage().create_loan(validated_data, Decimal(str(emi)))
        return jsonify(model_to_dict(loan)), 201
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error creating loan")
        return jsonify({"message": "Failed to create loan"}), 500


@api.route('/api/loans', methods=['GET'])
@is_authenticated
def get_loans():
    try:
        loans = get_storage().get_loans_by_user_id(get_user_id(), status=request.args.get('status'))
        return jsonify(models_to_dicts(loans))
    except Exception:
        logger.exception("Error fetching loans")
        return jsonify({"message": "Failed to fetch loans"}), 500


@api.route('/api/loans/calculate-emi', methods=['POST'])
@is_authenticated
def calculate_loan_emi():
    try:
        data = get_json()
        validated_data = EMICalculationSchema(**data)
        emi = calculate_emi(validated_data.principal_amount, validated_data.interest_rate,
                            validated_data.tenure_months)
        result = {
            "monthlyEmi": emi,
            "totalInterest": calculate_total_interest(validated_data.principal_amount, emi,
                                                      validated_data.tenure_months),
            "totalPayment": round(emi * validated_data.tenure_months, 2)
        }
        if data.get('include_schedule'):
            result["schedule"] = generate_emi_schedule({
                "principal_amount": validated_data.principal_amount,
                "interest_rate": validated_data.interest_rate,
                "tenure_months": validated_data.tenure_months,
                "monthly_emi": emi,
                "start_date": validated_data.start_date or date.today()
            })
        return jsonify(result)
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error calculating EMI")
        return jsonify({"message": "Failed to calculate EMI"}), 500


@api.route('/api/loans/<loan_id>', methods=['GET'])
@is_authenticated
def get_loan(loan_id):
    try:
        user_id = get_user_id()
        loan = get_storage().get_loan_by_id(user_id, loan_id)
        if not loan:
            return jsonify({"message": "Loan not found"}), 404
        payments = get_storage().get_loan_payments(user_id, loan_id)
        result = model_to_dict(loan)
        result["progress"] = loan_progress(loan, payments)
        return jsonify(result)
    except Exception:
        logger.exception("Error fetching loan")
        return jsonify({"message": "Failed to fetch loan"}), 500


@api.route('/api/loans/<loan_id>', methods=['PATCH'])
@is_authenticated
def update_loan(loan_id):
    try:
        user_id = get_user_id()
        existing = get_storage().get_loan_by_id(user_id, loan_id)
        if not existing:
            return jsonify({"message": "Loan not found"}), 404

        data = UpdateLoanSchema(**get_json()).model_dump(exclude_unset=True)
        if {'principal_amount', 'interest_rate', 'tenure_months'} & data.keys():
            emi = calculate_emi(
                data.get('principal_amount', existing.principal_amount),
                data.get('interest_rate', existing.interest_rate),
                data.get('tenure_months', existing.tenure_months)
            )
            data['monthly_emi'] = Decimal(str(emi))
        loan = get_storage().update_loan(user_id, loan_id, data)
        return jsonify(model_to_dict(loan))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating loan")
        return jsonify({"message": "Failed to update loan"}), 500


@api.route('/api/loans/<loan_id>', methods=['DELETE'])
@is_authenticated
def delete_loan(loan_id):
    try:
        if not get_storage().delete_loan(get_user_id(), loan_id):
            return jsonify({"message": "Loan not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting loan")
        return jsonify({"message": "Failed to delete loan"}), 500


@api.route('/api/loans/<loan_id>/schedule', methods=['GET'])
@is_authenticated
def get_loan_schedule(loan_id):
    try:
        loan = get_storage().get_loan_by_id(get_user_id(), loan_id)
        if not loan:
            return jsonify({"message": "Loan not found"}), 404
        schedule = generate_emi_schedule(loan)
        return jsonify({
            "loanId": loan.id,
            "monthlyEmi": float(loan.monthly_emi),
            "totalInterest": calculate_total_interest(loan.principal_amount, loan.monthly_emi, loan.tenure_months),
            "schedule": schedule
        })
    except Exception:
        logger.exception("Error generating loan schedule")
        return jsonify({"message": "Failed to generate schedule"}), 500


@api.route('/api/loans/<loan_id>/payments', methods=['GET'])
@is_authenticated
def get_loan_payments(loan_id):
    try:
        payments = get_storage().get_loan_payments(get_user_id(), loan_id)
        if payments is None:
            return jsonify({"message": "Loan not found"}), 404
        return jsonify(models_to_dicts(payments))
    except Exception:
        logger.exception("Error fetching loan payments")
        return jsonify({"message": "Failed to fetch loan payments"}), 500


@api.route('/api/loans/<loan_id>/payments', methods=['POST'])
@is_authenticated
def create_loan_payment(loan_id):
    try:
        user_id = get_user_id()
        loan = get_storage().get_loan_by_id(user_id, loan_id)
        if not loan:
            return jsonify({"message": "Loan not found"}), 404

        data = get_json()
        data['loan_id'] = loan_id
        validated_data = InsertLoanPaymentSchema(**data)

        outstanding = current_outstanding(loan, get_storage().get_loan_payments(user_id, loan_id))
        split = split_payment(outstanding, loan.interest_rate, validated_data.amount_paid)
        for field, value in split.items():
            if getattr(validated_data, field) is None:
                setattr(validated_data, field, Decimal(str(value)))
        close_loan = validated_data.status == 'completed' and validated_data.outstanding_balance <= 0

        payment = get_storage().create_loan_payment(user_id, validated_data, close_loan=close_loan)

        if data.get('record_transaction'):
            get_storage().create_transaction(InsertTransactionSchema(
                user_id=user_id,
                type='expense',
                amount=validated_data.amount_paid,
                category='EMI Payment',
                description=f"EMI - {loan.loan_name}",
                date=validated_data.payment_date,
                loan_id=loan_id,
                source='manual'
            ))
        return jsonify(model_to_dict(payment)), 201
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error recording loan payment")
        return jsonify({"message": "Failed to record loan payment"}), 500


@api.route('/api/loans/<loan_id>/payments/<payment_id>', methods=['PATCH'])
@is_authenticated
def update_loan_payment(loan_id, payment_id):
    try:
        data = UpdateLoanPaymentSchema(**get_json()).model_dump(exclude_unset=True)
        payment = get_storage().update_loan_payment(get_user_id(), loan_id, payment_id, data)
        if not payment:
            return jsonify({"message": "Payment not found"}), 404
        return jsonify(model_to_dict(payment))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating loan payment")
        return jsonify({"message": "Failed to update loan payment"}), 500


@api.route('/api/loans/<loan_id>/payments/<payment_id>', methods=['DELETE'])
@is_authenticated
def delete_loan_payment(loan_id, payment_id):
    try:
        if not get_storage().delete_loan_payment(get_user_id(), loan_id, payment_id):
            return jsonify({"message": "Payment not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting loan payment")
        return jsonify({"message": "Failed to delete loan payment"}), 500


@api.route('/api/loans/<loan_id>/emi-tracking', methods=['GET'])
@is_authenticated
def get_emi_tracking(loan_id):
    try:
        user_id = get_user_id()
        loan = get_storage().get_loan_by_id(user_id, loan_id)
        if not loan:
            return jsonify({"message": "Loan not found"}), 404
        payments = get_storage().get_loan_payments(user_id, loan_id)
        progress = loan_progress(loan, payments)
        today = date.today().isoformat()

        schedule = generate_emi_schedule(loan)
        for entry in schedule:
            if entry["month"] <= progress["paymentsCount"]:
                entry["status"] = "paid"
            elif entry["paymentDate"] < today:
                entry["status"] = "overdue"
            else:
                entry["status"] = "upcoming"

        return jsonify({
            "loan": model_to_dict(loan),
            "progress": progress,
            "payments": models_to_dicts(payments),
            "schedule": schedule,
            "nextEmi": next((e for e in schedule if e["status"] != "paid"), None)
        })
    except Exception:
        logger.exception("Error fetching EMI tracking")
        return jsonify({"message": "Failed to fetch EMI tracking"}), 500


@api.route('/api/emi/summary', methods=['GET'])
@is_authenticated
def get_emi_summary():
    try:
        user_id = get_user_id()
        this_month = current_month_range()
        loans = get_storage().get_loans_by_user_id(user_id)
        transactions = get_storage().get_transactions_by_user_id(
            user_id, start_date=this_month.start, end_date=this_month.end
        )
        return jsonify(emi_summary(loans, transactions))
    except Exception:
        logger.exception("Error calculating EMI summary")
        return jsonify({"message": "Failed to calculate EMI summary"}), 500


# Lending

@api.route('/api/lending', methods=['POST'])
@is_authenticated
def create_lending():
    try:
        data = get_json()
        data['user_id'] = get_user_id()
        lending = get_storage().create_lending(InsertLendingSchema(**data))
        return jsonify(model_to_dict(lending)), 201
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error creating lending record")
        return jsonify({"message": "Failed to create lending record"}), 500


@api.route('/api/lending', methods=['GET'])
@is_authenticated
def get_lending():
    try:
        lending = get_storage().get_lending_by_user_id(
            get_user_id(),
            person_name=request.args.get('person'),
            type=request.args.get('type')
        )
        return jsonify(models_to_dicts(lending))
    except Exception:
        logger.exception("Error fetching lending records")
        return jsonify({"message": "Failed to fetch lending records"}), 500


@api.route('/api/lending/summary', methods=['GET'])
@is_authenticated
def get_lending_summary():
    try:
        lending = get_storage().get_lending_by_user_id(get_user_id())
        return jsonify({
            "summary": calculate_lending_summary(lending),
            "people": aggregate_lending_by_person(lending)
        })
    except Exception:
        logger.exception("Error calculating lending summary")
        return jsonify({"message": "Failed to calculate lending summary"}), 500


@api.route('/api/lending/<lending_id>', methods=['PATCH'])
@is_authenticated
def update_lending(lending_id):
    try:
        data = UpdateLendingSchema(**get_json()).model_dump(exclude_unset=True)
        lending = get_storage().update_lending(get_user_id(), lending_id, data)
        if not lending:
            return jsonify({"message": "Lending record not found"}), 404
        return jsonify(model_to_dict(lending))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating lending record")
        return jsonify({"message": "Failed to update lending record"}), 500


@api.route('/api/lending/<lending_id>', methods=['DELETE'])
@is_authenticated
def delete_lending(lending_id):
    try:
        if not get_storage().delete_lending(get_user_id(), lending_id):
            return jsonify({"message": "Lending record not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting lending record")
        return jsonify({"message": "Failed to delete lending record"}), 500


# Recurring payments

@api.route('/api/recurring', methods=['POST'])
@is_authenticated
def create_recurring():
    try:
        data = get_json()
        data['user_id'] = get_user_id()
        recurring = get_storage().create_recurring(InsertRecurringSchema(**data))
        return jsonify(model_to_dict(recurring)), 201
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error creating recurring payment")
        return jsonify({"message": "Failed to create recurring payment"}), 500


@api.route('/api/recurring', methods=['GET'])
@is_authenticated
def get_recurring():
    try:
        active_only = request.args.get('active', '').lower() in ('1', 'true')
        payments = get_storage().get_recurring_by_user_id(get_user_id(), active_only=active_only)
        return jsonify(models_to_dicts(payments))
    except Exception:
        logger.exception("Error fetching recurring payments")
        return jsonify({"message": "Failed to fetch recurring payments"}), 500


@api.route('/api/recurring/due', methods=['GET'])
@is_authenticated
def get_recurring_due():
    try:
        payments = get_storage().get_recurring_by_user_id(get_user_id(), active_only=True)
        buckets = classify_due(payments, horizon_days=request.args.get('days', 30, type=int))
        return jsonify({key: models_to_dicts(items) for key, items in buckets.items()})
    except Exception:
        logger.exception("Error classifying recurring payments")
        return jsonify({"message": "Failed to fetch due payments"}), 500


@api.route('/api/recurring/detect', methods=['GET'])
@is_authenticated
def detect_recurring_transactions():
    try:
        transactions = get_storage().get_transactions_by_user_id(get_user_id(), type='expense')
        min_occurrences = max(2, request.args.get('min_occurrences', 3, type=int))
        return jsonify({"recurring": detect_recurring(transactions, min_occurrences=min_occurrences)})
    except Exception:
        logger.exception("Error detecting recurring transactions")
        return jsonify({"message": "Failed to detect recurring transactions"}), 500


@api.route('/api/recurring/<recurring_id>', methods=['PATCH'])
@is_authenticated
def update_recurring(recurring_id):
    try:
        data = UpdateRecurringSchema(**get_json()).model_dump(exclude_unset=True)
        recurring = get_storage().update_recurring(get_user_id(), recurring_id, data)
        if not recurring:
            return jsonify({"message": "Recurring payment not found"}), 404
        return jsonify(model_to_dict(recurring))
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Error updating recurring payment")
        return jsonify({"message": "Failed to update recurring payment"}), 500


@api.route('/api/recurring/<recurring_id>', methods=['DELETE'])
@is_authenticated
def delete_recurring(recurring_id):
    try:
        if not get_storage().delete_recurring(get_user_id(), recurring_id):
            return jsonify({"message": "Recurring payment not found"}), 404
        return '', 204
    except Exception:
        logger.exception("Error deleting recurring payment")
        return jsonify({"message": "Failed to delete recurring payment"}), 500


@api.route('/api/recurring/<recurring_id>/mark-paid', methods=['POST'])
@is_authenticated
def mark_recurring_paid(recurring_id):
    try:
        user_id = get_user_id()
        payment = get_storage().get_recurring_by_id(user_id, recurring_id)
        if not payment:
            return jsonify({"message": "Recurring payment not found"}), 404
        paid_on = get_json().get('paid_on')
        if paid_on is not None and not isinstance(paid_on, str):
            return jsonify({"message": "paid_on must be a YYYY-MM-DD date"}), 400
        transaction_data, next_due = mark_paid(payment, date.fromisoformat(paid_on) if paid_on else None)
        recurring, transaction = get_storage().record_recurring_payment(
            user_id, recurring_id, InsertTransactionSchema(user_id=user_id, **transaction_data), next_due
        )
        return jsonify({
            "recurring": model_to_dict(recurring),
            "transaction": model_to_dict(transaction)
        })
    except ValidationError as e:
        return validation_error(e)
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error marking recurring payment as paid")
        return jsonify({"message": "Failed to mark payment as paid"}), 500


# Analytics

@api.route('/api/analytics/summary', methods=['GET'])
@is_authenticated
def get_analytics_summary():
    try:
        user_id = get_user_id()
        period = period_from_args(current_month_range())
        transactions = get_storage().get_transactions_by_user_id(
            user_id, start_date=period.start, end_date=period.end
        )
        lending = get_storage().get_lending_by_user_id(user_id)
        return jsonify({
            "period": period.to_dict(),
            "summary": calculate_financial_summary(transactions),
            "lending": calculate_lending_summary(filter_by_date_range(lending, period))
        })
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error calculating summary")
        return jsonify({"message": "Failed to calculate summary"}), 500


@api.route('/api/analytics/categories', methods=['GET'])
@is_authenticated
def get_analytics_categories():
    try:
        period = period_from_args(current_month_range())
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(), start_date=period.start, end_date=period.end
        )
        category_type = request.args.get('type', 'expense')
        return jsonify({
            "period": period.to_dict(),
            "categories": group_transactions_by_category(transactions, category_type)
        })
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error grouping categories")
        return jsonify({"message": "Failed to calculate category breakdown"}), 500


@api.route('/api/analytics/trends', methods=['GET'])
@is_authenticated
def get_analytics_trends():
    try:
        months = min(24, max(1, request.args.get('months', 6, type=int)))
        period = last_n_months_range(months)
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(), start_date=period.start, end_date=period.end
        )
        return jsonify({"period": period.to_dict(), "months": calculate_monthly_totals(transactions)})
    except Exception:
        logger.exception("Error calculating trends")
        return jsonify({"message": "Failed to calculate trends"}), 500


@api.route('/api/analytics/investments', methods=['GET'])
@is_authenticated
def get_analytics_investments():
    try:
        period = period_from_args()
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(),
            start_date=period.start if period else None,
            end_date=period.end if period else None,
            type='investment'
        )
        summary = aggregate_investments_by_category(transactions)
        breakdown = [
            {
                "category": c["category"],
                "amount": c["amount"],
                "count": c["count"],
                "percentage": c["percentage"],
                "risk": get_investment_risk_level(c["category"])
            }
            for c in group_transactions_by_category(transactions)
        ]
        return jsonify({"summary": summary, "breakdown": breakdown})
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error aggregating investments")
        return jsonify({"message": "Failed to aggregate investments"}), 500


@api.route('/api/analytics/insights', methods=['GET'])
@is_authenticated
def get_analytics_insights():
    try:
        period = last_n_months_range(2)
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(), start_date=period.start, end_date=period.end
        )
        return jsonify({"insights": spending_insights(transactions)})
    except Exception:
        logger.exception("Error generating insights")
        return jsonify({"message": "Failed to generate insights"}), 500


@api.route('/api/analytics/presets', methods=['GET'])
@is_authenticated
def get_date_presets():
    return jsonify([preset.to_dict() for preset in date_range_presets()])


@api.route('/api/health-score', methods=['GET'])
@is_authenticated
def get_health_score():
    try:
        user_id = get_user_id()
        period = period_from_args()
        transactions = get_storage().get_transactions_by_user_id(
            user_id,
            start_date=period.start if period else None,
            end_date=period.end if period else None
        )
        lending = get_storage().get_lending_by_user_id(user_id)
        return jsonify(health_score_from_data(transactions, lending).to_dict())
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Health score calculation error")
        return jsonify({"message": "Failed to calculate health score"}), 500


# AI

@api.route('/api/ai/chat', methods=['POST'])
@is_authenticated
def ai_chat():
    try:
        client = get_ai_client()
        if not client:
            return jsonify({"message": AI_UNAVAILABLE}), 503

        data = get_json()
        messages = data.get('messages', [])
        if not messages or not isinstance(messages, list):
            return jsonify({"message": "Invalid messages format"}), 400

        transactions = get_storage().get_transactions_by_user_id(get_user_id(), limit=100)
        model = current_app.config['AI_MODEL']
        if data.get('stream'):
            events = stream_chat(client, messages, transactions, model=model)
            return Response(events, mimetype='text/event-stream',
                            headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'})
        return jsonify({"message": chat(client, messages, transactions, model=model)})
    except AIServiceError as e:
        return jsonify({"message": e.message}), e.status_code
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("AI chat error")
        return jsonify({"message": "Failed to get AI response"}), 500


@api.route('/api/ai/categorize', methods=['POST'])
@is_authenticated
def ai_categorize_transaction():
    try:
        description = str(get_json().get('description') or '').strip()
        if not description:
            return jsonify({"message": "Description is required"}), 400
        result = suggest_category(description, get_ai_client(), model=current_app.config['AI_MODEL'])
        return jsonify(result.to_dict())
    except Exception:
        logger.exception("AI categorization error")
        return jsonify({"message": "Failed to categorize transaction"}), 500


@api.route('/api/ai/categorize/batch', methods=['POST'])
@is_authenticated
def ai_categorize_batch():
    try:
        user_id = get_user_id()
        data = get_json()
        transaction_ids = data.get('transaction_ids') or []
        if not transaction_ids or not isinstance(transaction_ids, list):
            return jsonify({"message": "No transaction IDs provided"}), 400

        transactions = get_storage().get_transactions_by_ids(user_id, transaction_ids)
        results = categorize_with_fallback(
            transactions, get_ai_client(),
            model=current_app.config['AI_MODEL'],
            batch_size=current_app.config['AI_BATCH_SIZE']
        )

        suggestions, applied = [], 0
        for transaction, result in zip(transactions, results):
            suggestions.append({
                "transaction_id": transaction.id,
                "description": transaction.description,
                "current_category": transaction.category,
                "suggested_category": result.category,
                "confidence": result.confidence,
                "method": result.method
            })
            if data.get('apply') and result.category != transaction.category:
                get_storage().update_transaction(user_id, transaction.id, {
                    "category": result.category, "confidence": result.confidence
                })
                applied += 1
        return jsonify({"suggestions": suggestions, "applied": applied})
    except Exception:
        logger.exception("Batch categorization error")
        return jsonify({"message": "Failed to categorize transactions"}), 500


@api.route('/api/ai/categorize-transactions', methods=['POST'])
@is_authenticated
def ai_categorize_rows():
    try:
        transactions = get_json().get('transactions')
        if not transactions or not isinstance(transactions, list):
            return jsonify({"message": "No transactions provided"}), 400
        if len(transactions) > 500:
            return jsonify({"message": "Too many transactions (max 500)"}), 400
        rows = [t if isinstance(t, dict) else {"description": str(t)} for t in transactions]
        results = categorize_with_fallback(
            rows, get_ai_client(),
            model=current_app.config['AI_MODEL'],
            batch_size=current_app.config['AI_BATCH_SIZE']
        )
        return jsonify({"categorizations": [r.to_dict() for r in results]})
    except Exception:
        logger.exception("Categorize transactions error")
        return jsonify({"message": "Failed to categorize transactions"}), 500


@api.route('/api/ai/parse-expense', methods=['POST'])
@is_authenticated
def ai_parse_expense():
    try:
        client = get_ai_client()
        if not client:
            return jsonify({"message": AI_UNAVAILABLE}), 503

        data = get_json()
        text = str(data.get('text') or '').strip()
        if not text:
            return jsonify({"message": "Text is required"}), 400

        result = parse_expense(client, text, model=current_app.config['AI_MODEL'])
        if not data.get('save'):
            return jsonify({"result": result})

        user_id = get_user_id()
        transaction = get_storage().create_transaction(InsertTransactionSchema(
            user_id=user_id,
            type=result['type'],
            amount=result['amount'],
            category=result['category'],
            description=result['description'],
            date=result['date'],
            source='ai',
            confidence=result['confidence']
        ))
        return jsonify({"result": result, "transaction": model_to_dict(transaction)}), 201
    except AIServiceError as e:
        return jsonify({"message": e.message}), e.status_code
    except ValidationError as e:
        return validation_error(e)
    except Exception:
        logger.exception("Parse expense error")
        return jsonify({"message": "Failed to parse expense"}), 500


@api.route('/api/ai/budget-suggestions', methods=['POST'])
@is_authenticated
def ai_budget_suggestions():
    try:
        client = get_ai_client()
        if not client:
            return jsonify({"message": AI_UNAVAILABLE}), 503

        user_id = get_user_id()
        period = last_n_months_range(4)
        transactions = get_storage().get_transactions_by_user_id(
            user_id, start_date=period.start, type='expense'
        )
        if not transactions:
            return jsonify({"message": "Add some transactions first to get AI suggestions."}), 400
        existing = {b.category for b in get_storage().get_budgets_by_user_id(user_id)}
        suggestions = suggest_budgets(client, transactions, existing, model=current_app.config['AI_MODEL'])
        return jsonify({"suggestions": suggestions})
    except AIServiceError as e:
        return jsonify({"message": e.message}), e.status_code
    except Exception:
        logger.exception("Budget suggestion error")
        return jsonify({"message": "Failed to generate budget suggestions"}), 500


# Reports

def _report_format():
    format_type = request.args.get('format', 'csv').lower()
    if format_type not in ('csv', 'pdf'):
        raise ValueError("Invalid format. Use 'csv' or 'pdf'")
    return format_type


@api.route('/api/reports/transactions', methods=['GET'])
@is_authenticated
def export_transactions():
    try:
        format_type = _report_format()
        period = period_from_args()
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(),
            start_date=period.start if period else None,
            end_date=period.end if period else None,
            type=request.args.get('type'),
            category=request.args.get('category')
        )
        if format_type == 'csv':
            return file_response(reports.transactions_csv(transactions), 'transactions.csv', 'text/csv')
        return file_response(reports.transactions_pdf(transactions, period_label(period)),
                             'transactions.pdf', 'application/pdf')
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error exporting transactions")
        return jsonify({"message": "Failed to export transactions"}), 500


@api.route('/api/reports/budgets', methods=['GET'])
@is_authenticated
def export_budgets():
    try:
        user_id = get_user_id()
        format_type = _report_format()
        period = period_from_args(current_month_range())
        budgets = get_storage().get_budgets_by_user_id(user_id)
        transactions = get_storage().get_transactions_by_user_id(
            user_id, start_date=period.start, end_date=period.end, type='expense'
        )
        utilizations = calculate_all_budget_utilizations(budgets, transactions, period)
        if format_type == 'csv':
            return file_response(reports.budgets_csv(utilizations), 'budgets.csv', 'text/csv')
        return file_response(reports.budgets_pdf(utilizations, period_label(period)),
                             'budgets.pdf', 'application/pdf')
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error exporting budgets")
        return jsonify({"message": "Failed to export budgets"}), 500


@api.route('/api/reports/summary', methods=['GET'])
@is_authenticated
def export_summary():
    try:
        format_type = _report_format()
        period = period_from_args()
        transactions = get_storage().get_transactions_by_user_id(
            get_user_id(),
            start_date=period.start if period else None,
            end_date=period.end if period else None
        )
        summary = calculate_financial_summary(transactions)
        categories = group_transactions_by_category(transactions, 'expense')
        monthly = calculate_monthly_totals(transactions)
        if format_type == 'csv':
            return file_response(reports.summary_csv(summary, categories, monthly), 'summary.csv', 'text/csv')
        return file_response(reports.summary_pdf(summary, categories, monthly, period_label(period)),
                             'summary.pdf', 'application/pdf')
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error exporting summary")
        return jsonify({"message": "Failed to export summary"}), 500


@api.route('/api/reports/loans/<loan_id>/schedule', methods=['GET'])
@is_authenticated
def export_loan_schedule(loan_id):
    try:
        format_type = _report_format()
        loan = get_storage().get_loan_by_id(get_user_id(), loan_id)
        if not loan:
            return jsonify({"message": "Loan not found"}), 404
        schedule = generate_emi_schedule(loan)
        if format_type == 'csv':
            return file_response(reports.loan_schedule_csv(schedule), 'loan_schedule.csv', 'text/csv')
        return file_response(reports.loan_schedule_pdf(loan, schedule), 'loan_schedule.pdf', 'application/pdf')
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        logger.exception("Error exporting loan schedule")
        return jsonify({"message": "Failed to export loan schedule"}), 500


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG') == '1')
