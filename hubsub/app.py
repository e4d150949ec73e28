import secrets

from flask import Flask, jsonify, request

from hubsub import config, formats
from hubsub.content import ContentStore
from hubsub.errors import PersistenceFailure, SignatureMismatch, UnsupportedFeed
from hubsub.ingest import IngestionOrchestrator, Push
from hubsub.logger import logger
from hubsub.models import open_database
from hubsub.subscriptions import (
    MODES, SubscriptionAcceptor, SubscriptionStore, SubscriptionVerifier, VerificationRequest,
)


def _entry_json(entry):
    return {
        "id": entry.id,
        "guid": entry.guid,
        "topic": entry.topic,
        "author": entry.author,
        "title": entry.title,
        "content": entry.content,
        "link": entry.link,
        "updated": entry.updated,
        "internal": entry.internal,
    }


def _optional_int(value):
    if value in (None, ""):
        return None
    return int(value)


def create_app(db=None):
    app = Flask(__name__)

    if db is None:
        db = open_database(config.DATABASE_PATH)
    subscriptions = SubscriptionStore(db)
    content = ContentStore(db, entry_url=config.ENTRY_URL)
    verifier = SubscriptionVerifier(subscriptions)
    orchestrator = IngestionOrchestrator(
        SubscriptionAcceptor(subscriptions),
        content,
        fallback_author=config.FALLBACK_AUTHOR,
        require_signature=config.REQUIRE_SIGNATURE,
    )

    @app.route('/')
    def index():
        return 'PubSubHubbub subscriber node powered by hubsub.'

    @app.route('/callback', methods=['GET'])
    def verify_callback():
        mode = request.args.get('hub.mode', default='', type=str)
        topic = request.args.get('hub.topic', default='', type=str)

        if mode == 'denied':
            logger.info("Hub denied subscription to %s: %s", topic, request.args.get('hub.reason', ''))
            return '', 200

        if mode not in MODES or not topic:
            return 'Malformed verification request', 400

        try:
            lease_seconds = _optional_int(request.args.get('hub.lease_seconds'))
        except ValueError:
            return 'Malformed lease', 400

        challenge = VerificationRequest(
            mode=mode,
            topic=topic,
            verify_token=request.args.get('hub.verify_token', default='', type=str),
            challenge=request.args.get('hub.challenge', default='', type=str),
            lease_seconds=lease_seconds,
        )
        if not verifier.verify(challenge):
            return 'Unknown subscription', 404
        return challenge.challenge, 200, {'Content-Type': 'text/plain'}

    @app.route('/callback', methods=['POST'])
    def push_callback():
        body = request.get_data()
        try:
            kind, document = formats.parse_document(body, request.headers.get('Content-Type'))
        except UnsupportedFeed as e:
            logger.warning("Rejecting push: %s", e)
            return str(e), 400

        push = Push(
            kind=kind,
            document=document,
            topics=frozenset(formats.find_topics(kind, document)),
            body=body,
            signature=request.headers.get('X-Hub-Signature'),
        )

        try:
            result = orchestrator.ingest(push)
        except SignatureMismatch as e:
            # the hub must not learn whether the signature was valid
            logger.warning("Ignoring push for %s: %s", sorted(push.topics), e)
            return '', 204
        except PersistenceFailure as e:
            logger.error("Error storing push: %s", e, exc_info=True)
            return 'Storage failure', 500

        logger.info("Push stored %d entries (%d skipped)", result.stored, result.skipped)
        return '', 204

    @app.route('/subscriptions', methods=['POST'])
    def store_subscription():
        data = request.get_json(silent=True) or {}
        logger.info("Received /subscriptions POST for topic %s", data.get('topic'))

        topic = data.get('topic')
        mode = data.get('mode', 'subscribe')
        if not topic or mode not in MODES:
            return 'topic and a valid mode are required', 400

        verify_token = data.get('verify_token') or secrets.token_urlsafe(16)
        try:
            sub = subscriptions.store_pending(
                topic,
                mode,
                verify_token,
                hub=data.get('hub'),
                lease_seconds=_optional_int(data.get('lease_seconds')),
                secret=data.get('secret'),
            )
        except (TypeError, ValueError) as e:
            return str(e), 400

        return jsonify({"topic": sub.topic, "mode": sub.mode, "verify_token": sub.verify_token}), 201

    @app.route('/entries', methods=['POST'])
    def publish_entry():
        data = request.get_json(silent=True) or {}
        if not data.get('title') and not data.get('content'):
            return 'title or content required', 400

        try:
            entry = content.publish(
                data.get('title', ''),
                data.get('content', ''),
                author=data.get('author') or config.FALLBACK_AUTHOR,
            )
        except PersistenceFailure as e:
            logger.error("Error in /entries: %s", e, exc_info=True)
            return 'Storage failure', 500

        return jsonify(_entry_json(entry)), 201

    @app.route('/entries', methods=['GET'])
    def list_entries():
        limit = request.args.get('limit', default=20, type=int)
        internal = request.args.get('internal', default=None, type=str)
        if internal is not None:
            internal = config._get_bool_env_var(internal)
        return jsonify([_entry_json(e) for e in content.recent(limit=limit, internal=internal)])

    return app
