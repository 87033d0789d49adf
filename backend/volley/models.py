from datetime import datetime, timezone
from volley import db, bcrypt
from flask_login import UserMixin
from volley.services import pricing


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(128), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    block_reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    @property
    def blocked(self):
        return self.block_reason is not None

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name or self.username,
            'is_admin': self.is_admin,
            'block_reason': self.block_reason,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=True)
    location_name = db.Column(db.String(255), nullable=True)
    location_link = db.Column(db.String(512), nullable=True)
    date_time = db.Column(db.DateTime, nullable=False, index=True)
    max_players = db.Column(db.Integer, nullable=False)
    unregister_deadline_hours = db.Column(db.Integer, default=5, nullable=False)
    readonly = db.Column(db.Boolean, default=False, nullable=False)
    with_positions = db.Column(db.Boolean, default=False, nullable=False)
    with_priority_players = db.Column(db.Boolean, default=False, nullable=False)
    payment_amount = db.Column(db.Integer, nullable=True)  # cents
    pricing_mode = db.Column(db.String(32), default=pricing.PER_PARTICIPANT, nullable=False)
    fully_paid = db.Column(db.Boolean, default=False, nullable=False)
    payment_requests_sent = db.Column(db.Boolean, default=False, nullable=False)
    # Per-game overrides of the configured registration windows; NULL falls back to config
    registration_open_days = db.Column(db.Integer, nullable=True)
    regular_registration_open_days = db.Column(db.Integer, nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    registrations = db.relationship(
        'Registration',
        back_populates='game',
        cascade='all, delete-orphan',
        order_by=lambda: [Registration.created_at, Registration.id],
    )

    def to_dict(self):
        active_count = sum(1 for r in self.registrations if not r.is_waitlist)
        return {
            'id': self.id,
            'title': self.title,
            'location_name': self.location_name,
            'location_link': self.location_link,
            'date_time': _iso(self.date_time),
            'max_players': self.max_players,
            'unregister_deadline_hours': self.unregister_deadline_hours,
            'readonly': self.readonly,
            'with_positions': self.with_positions,
            'with_priority_players': self.with_priority_players,
            'payment_amount': self.payment_amount,
            'pricing_mode': self.pricing_mode,
            'per_participant_cost': pricing.per_participant_cost(
                self.payment_amount, self.pricing_mode, self.max_players, active_count or None
            ),
            'total_cost': pricing.total_cost(self.payment_amount, self.pricing_mode, active_count or self.max_players),
            'fully_paid': self.fully_paid,
            'payment_requests_sent': self.payment_requests_sent,
            'registration_open_days': self.registration_open_days,
            'regular_registration_open_days': self.regular_registration_open_days,
            'created_by_id': self.created_by_id,
            'created_at': _iso(self.created_at),
            'active_count': active_count,
            'waitlist_count': len(self.registrations) - active_count,
        }


class Registration(db.Model):
    __tablename__ = 'registration'
    __table_args__ = (
        db.UniqueConstraint('game_id', 'user_id', 'guest_name', name='uix_registration_game_user_guest'),
        # NULL guest names are distinct under the constraint above
        db.Index(
            'uix_registration_game_user_self', 'game_id', 'user_id', unique=True,
            postgresql_where=db.text('guest_name IS NULL'), sqlite_where=db.text('guest_name IS NULL'),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id', ondelete='CASCADE'), nullable=False, index=True)
    # For guest rows this is the inviter
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    guest_name = db.Column(db.String(128), nullable=True)
    is_waitlist = db.Column(db.Boolean, default=False, nullable=False)
    paid = db.Column(db.Boolean, default=False, nullable=False)
    bringing_the_ball = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    game = db.relationship('Game', back_populates='registrations')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'guest_name': self.guest_name,
            'is_waitlist': self.is_waitlist,
            'paid': self.paid,
            'bringing_the_ball': self.bringing_the_ball,
            'created_at': _iso(self.created_at),
            'user': self.user.to_dict() if self.user else None,
        }


class GameAdministrator(db.Model):
    """Assigns a user to manage every game on a weekday/with_positions slot."""
    __tablename__ = 'game_administrator'
    __table_args__ = (
        db.UniqueConstraint('day_of_week', 'with_positions', name='uix_game_administrator_slot'),
    )
    id = db.Column(db.Integer, primary_key=True)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Monday ... 6=Sunday
    with_positions = db.Column(db.Boolean, default=False, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    user = db.relationship('User')
    priority_players = db.relationship('PriorityPlayer', back_populates='game_administrator', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'day_of_week': self.day_of_week,
            'with_positions': self.with_positions,
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
            'user': self.user.to_dict() if self.user else None,
        }


class PriorityPlayer(db.Model):
    __tablename__ = 'priority_player'
    __table_args__ = (
        db.UniqueConstraint('game_administrator_id', 'user_id', name='uix_priority_player_assignment'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_administrator_id = db.Column(db.Integer, db.ForeignKey('game_administrator.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    game_administrator = db.relationship('GameAdministrator', back_populates='priority_players')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'game_administrator_id': self.game_administrator_id,
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
            'user': self.user.to_dict() if self.user else None,
        }
