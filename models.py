# models.py - Flask-SQLAlchemy models for the treasure hunt API
from datetime import datetime, timezone
from decimal import Decimal
import enum

from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index, event, text
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class UserRole(enum.Enum):
    PARTICIPANT = "PARTICIPANT"
    PROMOTER = "PROMOTER"
    ADMIN = "ADMIN"


class Tier(enum.Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"
    VIP = "VIP"


class ParticipantStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class PromoterStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PromoterType(enum.Enum):
    INFLUENCER = "INFLUENCER"
    BUSINESS = "BUSINESS"
    COMMUNITY = "COMMUNITY"


class PaymentStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WebhookEventStatus(enum.Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else 0.0


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

# ===========================================================
# USER MODELS
# ===========================================================

class User(db.Model, BaseMixin, UserMixin):
    """Account entity shared by participants, promoters and admins."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    role = db.Column(db.Enum(UserRole, name="userrole"), nullable=False, default=UserRole.PARTICIPANT, index=True)
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    is_active_account = db.Column(db.Boolean, default=True, nullable=False)

    participant = db.relationship(
        'Participant', uselist=False, back_populates='user', cascade="all,delete-orphan"
    )
    promoter = db.relationship(
        'Promoter', uselist=False, back_populates='user', cascade="all,delete-orphan",
        foreign_keys='Promoter.user_id',
    )
    payments = db.relationship('Payment', back_populates='user')

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self):
        return self.is_active_account

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def to_dict(self, include_profiles=False):
        result = {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
            "country": self.country,
            "emailVerified": self.email_verified,
            "createdAt": _iso(self.created_at),
        }
        if include_profiles:
            result["participant"] = self.participant.to_dict() if self.participant else None
            result["promoter"] = self.promoter.to_dict() if self.promoter else None
        return result

# ===========================================================
# PARTICIPANTS
# ===========================================================

class Participant(db.Model, BaseMixin):
    __tablename__ = 'participants'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False, index=True)
    tier = db.Column(db.Enum(Tier, name="tier"), nullable=False, default=Tier.FREE)
    status = db.Column(db.Enum(ParticipantStatus, name="participantstatus"), nullable=False,
                       default=ParticipantStatus.PENDING, index=True)
    wallet_address = db.Column(db.String(255))
    discord_username = db.Column(db.String(100))
    telegram_username = db.Column(db.String(100))
    referral_code = db.Column(db.String(20))
    referred_by = db.Column(db.String(20), nullable=True, index=True)  # promoter referral code used at signup
    registration_data = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))

    user = db.relationship('User', back_populates='participant')
    payments = db.relationship('Payment', back_populates='participant', order_by='Payment.created_at.desc()')

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "tier": self.tier.value,
            "status": self.status.value,
            "walletAddress": self.wallet_address,
            "discordUsername": self.discord_username,
            "telegramUsername": self.telegram_username,
            "referredBy": self.referred_by,
            "registrationData": self.registration_data,
            "createdAt": _iso(self.created_at),
        }

# ===========================================================
# PROMOTERS & REFERRALS
# ===========================================================

class Promoter(db.Model, BaseMixin):
    __tablename__ = 'promoters'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False, index=True)
    type = db.Column(db.Enum(PromoterType, name="promotertype"), nullable=False)
    status = db.Column(db.Enum(PromoterStatus, name="promoterstatus"), nullable=False,
                       default=PromoterStatus.PENDING, index=True)
    referral_code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    company_name = db.Column(db.String(255))
    website = db.Column(db.String(255))
    social_media_links = db.Column(db.JSON)
    followers_count = db.Column(db.Integer)
    engagement_rate = db.Column(db.Numeric(5, 2))
    niche = db.Column(db.String(100))
    application_data = db.Column(db.JSON)
    commission_rate = db.Column(db.Numeric(5, 4), nullable=False, default=Decimal("0.10"),
                                server_default=text("0.10"))

    # Running aggregates, only ever incremented by referral conversion
    total_referrals = db.Column(db.Integer, nullable=False, default=0, server_default=text("0"))
    total_revenue = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"),
                              server_default=text("0.00"))

    approved_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))

    user = db.relationship('User', back_populates='promoter', foreign_keys=[user_id])
    referrals = db.relationship('Referral', back_populates='promoter', lazy='dynamic',
                                cascade="all,delete-orphan")

    def to_dict(self, include_user=False):
        result = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type.value,
            "status": self.status.value,
            "referralCode": self.referral_code,
            "companyName": self.company_name,
            "website": self.website,
            "socialMediaLinks": self.social_media_links,
            "followersCount": self.followers_count,
            "engagementRate": _money(self.engagement_rate) if self.engagement_rate is not None else None,
            "niche": self.niche,
            "commissionRate": _money(self.commission_rate),
            "totalReferrals": self.total_referrals,
            "totalRevenue": _money(self.total_revenue),
            "approvedAt": _iso(self.approved_at),
            "rejectionReason": self.rejection_reason,
            "createdAt": _iso(self.created_at),
        }
        if include_user and self.user:
            result["user"] = self.user.to_dict()
        return result


class Referral(db.Model, BaseMixin):
    __tablename__ = 'referrals'

    id = db.Column(db.Integer, primary_key=True)
    promoter_id = db.Column(db.Integer, db.ForeignKey('promoters.id', ondelete='CASCADE'), nullable=False, index=True)
    participant_email = db.Column(db.String(255), nullable=False)
    referral_code = db.Column(db.String(20), nullable=False)
    tier = db.Column(db.Enum(Tier, name="tier"), nullable=False)
    commission = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey('payments.id', ondelete='SET NULL'), nullable=True, unique=True)

    promoter = db.relationship('Promoter', back_populates='referrals')
    payment = db.relationship('Payment')

    __table_args__ = (
        Index('idx_referral_email_code', 'participant_email', 'referral_code'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "promoterId": self.promoter_id,
            "participantEmail": self.participant_email,
            "referralCode": self.referral_code,
            "tier": self.tier.value,
            "commission": _money(self.commission),
            "isConverted": self.is_converted,
            "convertedAt": _iso(self.converted_at),
            "paymentId": self.payment_id,
            "createdAt": _iso(self.created_at),
        }

# ===========================================================
# PAYMENTS
# ===========================================================

class Payment(db.Model, BaseMixin):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete='SET NULL'), nullable=True, index=True)
    participant_id = db.Column(db.Integer, db.ForeignKey("participants.id", ondelete='SET NULL'), nullable=True, index=True)
    stripe_session_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default='usd')
    tier = db.Column(db.Enum(Tier, name="tier"), nullable=False)
    status = db.Column(db.Enum(PaymentStatus, name="paymentstatus"), nullable=False,
                       default=PaymentStatus.PENDING, index=True)
    failure_reason = db.Column(db.Text)
    referral_code = db.Column(db.String(20))
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship('User', back_populates='payments')
    participant = db.relationship('Participant', back_populates='payments')

    __table_args__ = (
        Index('idx_payment_participant_tier_status', 'participant_id', 'tier', 'status'),
    )

    @property
    def is_terminal(self):
        return self.status in (PaymentStatus.COMPLETED, PaymentStatus.FAILED)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "participantId": self.participant_id,
            "stripeSessionId": self.stripe_session_id,
            "amount": _money(self.amount),
            "currency": self.currency,
            "tier": self.tier.value,
            "status": self.status.value,
            "failureReason": self.failure_reason,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }

# ===========================================================
# AUDITING & WEBHOOKS
# ===========================================================

class AuditLog(db.Model):
    """Append-only record of every state-changing operation."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    # Plain column: rows keep the actor id after the account is deleted
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    actor = db.relationship('User', primaryjoin='foreign(AuditLog.actor_user_id) == User.id', viewonly=True)

    def to_dict(self):
        return {
            "id": self.id,
            "actorUserId": self.actor_user_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "oldValues": self.old_values,
            "newValues": self.new_values,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": _iso(self.created_at),
            "actor": {
                "firstName": self.actor.first_name,
                "lastName": self.actor.last_name,
                "email": self.actor.email,
            } if self.actor else None,
        }


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} cannot be deleted")


class WebhookEvent(db.Model, BaseMixin):
    """Delivery ledger for provider events, keyed by the provider's event id."""
    __tablename__ = 'webhook_events'

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(50), nullable=False, default='stripe')
    event_id = db.Column(db.String(255), nullable=False)
    event_type = db.Column(db.String(100))
    payload = db.Column(db.JSON, nullable=False)
    reference = db.Column(db.String(255), index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(50), nullable=False, default=WebhookEventStatus.RECEIVED.value)
    remarks = db.Column(db.String(500))
    processed_at = db.Column(db.DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('provider', 'event_id', name='uq_webhook_provider_event'),
    )

    @property
    def is_settled(self):
        return self.status in (
            WebhookEventStatus.PROCESSED.value,
            WebhookEventStatus.IGNORED.value,
            WebhookEventStatus.DEAD_LETTERED.value,
        )

    def mark_processed(self, status=WebhookEventStatus.PROCESSED, remarks=None):
        self.status = status.value
        self.remarks = remarks[:500] if remarks else None
        self.processed_at = utcnow()
