from flask import Flask, jsonify
from models import db
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from auth import user_from_request
from database import normalize_pg_url_for_sqlalchemy
from errors import ApiError, Unauthorized, UploadError
from pdf_renderer import XhtmlPdfRenderer
from routes import main_bp
from uploads import too_large_message
from admin_routes import admin_bp
import os
import logging

logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'), format='%(asctime)s %(levelname)s %(message)s')

app = Flask(__name__, static_url_path='/static')
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'devsecret_change_me')

# Database configuration
DATABASE_URL = os.environ.get('DATABASE_URL')
if DATABASE_URL:
    app.config['SQLALCHEMY_DATABASE_URI'] = normalize_pg_url_for_sqlalchemy(DATABASE_URL)
else:
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///proficiency.db'

logging.info(f"Using database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")

app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {'pool_pre_ping': True}

# Session token
app.config['JWT_ACCESS_SECRET'] = os.environ.get('JWT_ACCESS_SECRET', app.config['SECRET_KEY'])
app.config['ACCESS_TOKEN_TTL_MINUTES'] = int(os.environ.get('ACCESS_TOKEN_TTL_MINUTES', 15))
app.config['AUTH_COOKIE_SECURE'] = os.environ.get('AUTH_COOKIE_SECURE', '0').lower() in ('1', 'true', 'yes', 'on')

# Uploads: two files of up to 5MB each plus form fields
app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', os.path.join(app.root_path, 'uploads'))
app.config['MAX_UPLOAD_BYTES'] = int(os.environ.get('MAX_UPLOAD_BYTES', 5 * 1024 * 1024))
app.config['MAX_CONTENT_LENGTH'] = 2 * app.config['MAX_UPLOAD_BYTES'] + 1024 * 1024

# Certificates
app.config['PUBLIC_BASE_URL'] = os.environ.get('PUBLIC_BASE_URL', 'http://localhost:5050')
app.config['PLATFORM_NAME'] = os.environ.get('PLATFORM_NAME', 'English Proficiency Platform')
app.config['CERT_DEFAULT_REGION'] = os.environ.get('CERT_DEFAULT_REGION', 'European Union')
app.config['CERT_LOGO_FILE'] = os.environ.get('CERT_LOGO_FILE')
app.config['CERT_LOGO_URL'] = os.environ.get('CERT_LOGO_URL')
app.config['LEVEL_PASS_RATIO'] = float(os.environ.get('LEVEL_PASS_RATIO', 0.6))
app.config['PDF_RENDERER'] = XhtmlPdfRenderer()
# None means an OS-seeded shuffle; tests inject random.Random(seed).
app.config['ATTEMPT_RNG'] = None

# Initialize extensions
db.init_app(app)
login_manager = LoginManager()
login_manager.init_app(app)
# Sessions live in the JWT cookie, not in the Flask session.
login_manager.session_protection = None

# Create database tables if they don't exist
with app.app_context():
    db.create_all()


@login_manager.request_loader
def load_user_from_request(request):
    return user_from_request(request)


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized()


@app.errorhandler(ApiError)
def handle_api_error(e):
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(e):
    err = UploadError(too_large_message(app.config['MAX_UPLOAD_BYTES']))
    return jsonify(err.to_dict()), err.status_code


@app.errorhandler(HTTPException)
def handle_http_error(e):
    code = (e.name or 'HTTP_ERROR').upper().replace(' ', '_')
    return jsonify({'ok': False, 'error': {'code': code, 'message': e.description}}), e.code


@app.errorhandler(Exception)
def handle_unexpected(e):
    logging.exception('[APP] Unhandled error')
    db.session.rollback()
    return jsonify(ApiError().to_dict()), 500


app.register_blueprint(main_bp)
app.register_blueprint(admin_bp)

if __name__ == '__main__':
    app.run(host='127.0.0.1', port=5050, debug=True)
