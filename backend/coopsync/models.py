from coopsync import db, bcrypt
from flask_login import UserMixin


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class MatchRecord(db.Model):
    """One JSON snapshot per match; absent once expires_at has passed."""
    __tablename__ = 'match_record'
    match_id = db.Column(db.String(64), primary_key=True)
    body = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.Float, nullable=False, index=True)


class ReplayEntry(db.Model):
    __tablename__ = 'replay_entry'
    __table_args__ = (db.UniqueConstraint('match_id', 'seq', name='uq_replay_entry_match_seq'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(64), nullable=False, index=True)
    seq = db.Column(db.Integer, nullable=False)
    body = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.Float, nullable=False)


class StoreMarker(db.Model):
    """Presence record with expiry (idempotency and decision-owner keys)."""
    __tablename__ = 'store_marker'
    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.String(255), nullable=False, default='1')
    expires_at = db.Column(db.Float, nullable=False)
