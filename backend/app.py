import logging
import uuid
from dataclasses import asdict

from flask import Blueprint, Flask, current_app, jsonify, render_template, request, session
from flask_cors import CORS

from config import STATIC_DIR, TEMPLATE_DIR, Config, spotify_credentials
from errors import EmptyPlaylistError, QuizStateError, TokenAcquisitionError, ValidationError, register_error_handlers
from quiz_engine import QuizEngine, QuizRegistry
from spotify import acquire_token, extract_playlist_id, fetch_playlist_tracks

quiz_bp = Blueprint('quiz', __name__)


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(module)s: %(message)s',
                                  datefmt='%Y-%m-%d %H:%M:%S')

    for name in ('spotify', 'quiz_engine'):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    app.logger.setLevel(level)


def create_app(config_class=Config):
    app = Flask(__name__, template_folder=TEMPLATE_DIR, static_folder=STATIC_DIR)
    app.config.from_object(config_class)
    CORS(app)

    configure_logging(app)
    register_error_handlers(app)

    delay = app.config['ADVANCE_DELAY_SECONDS']
    app.extensions['quiz_registry'] = QuizRegistry(lambda: QuizEngine(advance_delay=delay),
                                                     max_size=app.config['QUIZ_REGISTRY_MAX_SIZE'])
    app.register_blueprint(quiz_bp)
    return app


def get_registry() -> QuizRegistry:
    return current_app.extensions['quiz_registry']


def current_engine(create=False):
    """The engine for this browser's quiz, tracked by an id in the session cookie."""
    quiz_id = session.get('quiz_id')
    if not quiz_id:
        if not create:
            return None
        quiz_id = session['quiz_id'] = uuid.uuid4().hex
    registry = get_registry()
    return registry.get_or_create(quiz_id) if create else registry.get(quiz_id)


def release_if_idle(engine):
    """Drops an idle engine from the registry; its final result goes out with this response."""
    if engine is not None and engine.state is None:
        quiz_id = session.pop('quiz_id', None)
        if quiz_id:
            get_registry().discard(quiz_id)


def quiz_view(engine):
    """Browser-facing snapshot of the quiz. The answer is only revealed once chosen."""
    state = engine.state if engine else None
    if state is None:
        result = engine.last_result if engine else None
        return {"status": "idle", "result": asdict(result) if result else None}

    view = {
        "status": "in_progress",
        "generation": state.generation,
        "question_index": state.question_index,
        "question": state.question_index + 1,
        "total": len(state.tracks),
        "score": state.score,
        "choices": list(state.choices),
        "preview_url": state.current_track.preview_url,
        "selected_answer": state.selected_answer,
        "is_correct": state.is_correct,
        "advance_delay": engine.advance_delay,
    }
    if state.answered:
        view["correct_answer"] = state.correct_name
    return view


def request_token():
    client_id, client_secret = spotify_credentials()
    return acquire_token(
        client_id,
        client_secret,
        token_url=current_app.config['SPOTIFY_TOKEN_URL'],
        timeout=current_app.config['SPOTIFY_REQUEST_TIMEOUT'],
    )


@quiz_bp.route('/')
def index():
    return render_template('index.html')


# Test endpoint to verify API is working
@quiz_bp.route('/api/test', methods=['GET'])
def test_api():
    return jsonify({"status": "ok", "message": "API is working"})


@quiz_bp.route('/api/auth', methods=['GET'])
def api_auth():
    """Hands the browser a client-credentials bearer token."""
    try:
        token = request_token()
    except TokenAcquisitionError:
        return jsonify({"error": "Failed to get Spotify token"}), 500
    return jsonify({"token": token})


@quiz_bp.route('/api/quiz/start', methods=['POST'])
def start_quiz():
    """Fetches the playlist and starts a new quiz, replacing any running one."""
    data = request.get_json(silent=True) or {}
    playlist = data.get('playlist', '')
    if not isinstance(playlist, str):
        raise ValidationError("Playlist must be a Spotify playlist ID or URL")
    playlist_id = extract_playlist_id(playlist)
    if not playlist_id:
        raise ValidationError("Enter a Spotify playlist ID or URL")

    token = data.get('token') or request_token()
    tracks = fetch_playlist_tracks(
        token,
        playlist_id,
        api_base=current_app.config['SPOTIFY_API_BASE'],
        timeout=current_app.config['SPOTIFY_REQUEST_TIMEOUT'],
    )
    if current_app.config['SKIP_TRACKS_WITHOUT_PREVIEW']:
        playable = [t for t in tracks if t.preview_url]
        if len(playable) < len(tracks):
            current_app.logger.info("Skipping %d tracks without a preview", len(tracks) - len(playable))
        tracks = playable

    engine = current_engine(create=True)
    try:
        engine.start(tracks)
    except EmptyPlaylistError:
        release_if_idle(engine)
        raise
    current_app.logger.info("Started quiz for playlist %s", playlist_id)
    return jsonify(quiz_view(engine))


@quiz_bp.route('/api/quiz/state', methods=['GET'])
def quiz_state():
    engine = current_engine()
    view = quiz_view(engine)
    release_if_idle(engine)
    return jsonify(view)


@quiz_bp.route('/api/quiz/answer', methods=['POST'])
def submit_answer():
    """Scores the answer; the next question follows after the advance delay."""
    data = request.get_json(silent=True) or {}
    choice = data.get('choice')
    if not isinstance(choice, str):
        raise ValidationError("Missing answer choice")

    engine = current_engine()
    if engine is None:
        raise QuizStateError("No quiz in progress")
    points = engine.answer(choice)
    return jsonify({"points": points, **quiz_view(engine)})


@quiz_bp.route('/api/quiz/advance', methods=['POST'])
def advance_quiz():
    data = request.get_json(silent=True) or {}
    engine = current_engine()
    if engine is None:
        raise QuizStateError("No quiz in progress")
    engine.advance(generation=data.get('generation'), question_index=data.get('question_index'))
    view = quiz_view(engine)
    release_if_idle(engine)
    return jsonify(view)


@quiz_bp.route('/api/reset', methods=['POST'])
def reset_progress():
    quiz_id = session.pop('quiz_id', None)
    if quiz_id:
        get_registry().discard(quiz_id)
    return jsonify({"success": True, "message": "Quiz reset."})


app = create_app()

if __name__ == '__main__':
    app.run(debug=True, port=5000)
