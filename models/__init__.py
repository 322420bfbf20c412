"""Core data models for the project catalog, OAuth accounts, reactions and settings."""
import uuid
from datetime import datetime

from flask_login import UserMixin

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


# Ordered best to worst.
REACTION_RATINGS: tuple[str, ...] = (
	"excellent",
	"standard",
	"sub-standard",
	"ghost",
)

# Philippine administrative regions as they appear in the public DPWH datasets.
REGIONS: tuple[str, ...] = (
	"National Capital Region",
	"Cordillera Administrative Region",
	"Region I",
	"Region II",
	"Region III",
	"Region IV-A",
	"Region IV-B",
	"Region V",
	"Region VI",
	"Region VII",
	"Region VIII",
	"Region IX",
	"Region X",
	"Region XI",
	"Region XII",
	"Region XIII",
	"Negros Island Region",
	"Bangsamoro Autonomous Region in Muslim Mindanao",
)

DEFAULT_PROJECT_STATUS = "active"


class Role(db.Model):
	__tablename__ = "roles"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(50), unique=True, nullable=False, index=True)
	description = db.Column(db.String(255), nullable=True)

	users = db.relationship("User", back_populates="role", lazy="dynamic")

	@staticmethod
	def get_or_create(name: str, description: str = ""):
		role = Role.query.filter_by(name=name).first()
		if role:
			return role
		role = Role(name=name, description=description)
		db.session.add(role)
		db.session.commit()
		return role


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	name = db.Column(db.String(150), nullable=False)
	username = db.Column(db.String(20), unique=True, nullable=True, index=True)
	avatar = db.Column(db.String(1024), nullable=True)
	provider = db.Column(db.String(20), nullable=False)
	provider_id = db.Column(db.String(255), nullable=False)
	role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True)
	is_location_verified = db.Column(db.Boolean, default=False, nullable=False)
	last_location_update = db.Column(db.DateTime, nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.UniqueConstraint("provider", "provider_id", name="uq_user_provider_identity"),
	)

	role = db.relationship("Role", back_populates="users")
	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	location = db.relationship("UserLocation", back_populates="user", uselist=False, cascade="all, delete-orphan")
	reactions = db.relationship("Reaction", back_populates="user", lazy="dynamic", cascade="all, delete-orphan")

	@property
	def is_admin(self) -> bool:
		return bool(self.role and self.role.name.lower() == "admin")

	@property
	def has_unrestricted_rating_rights(self) -> bool:
		"""Capability that lets the account rate any project without proximity checks."""
		return self.is_admin

	@property
	def display_name(self) -> str:
		return self.username or self.name

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def public_payload(self) -> dict:
		return {
			"id": self.id,
			"name": self.display_name,
			"username": self.username,
			"avatar": self.avatar,
			"isLocationVerified": bool(self.is_location_verified),
		}

	def account_payload(self) -> dict:
		payload = self.public_payload()
		payload.update(
			{
				"email": self.email,
				"name": self.name,
				"provider": self.provider,
				"role": self.role.name if self.role else None,
				"lastLocationUpdate": self.last_location_update.isoformat() if self.last_location_update else None,
			}
		)
		return payload


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class UserLocation(db.Model):
	__tablename__ = "user_locations"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
	latitude = db.Column(db.Numeric(10, 8), nullable=False)
	longitude = db.Column(db.Numeric(11, 8), nullable=False)
	address = db.Column(db.String(255), nullable=True)
	verified_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

	user = db.relationship("User", back_populates="location")

	def to_payload(self) -> dict:
		return {
			"id": self.id,
			"userId": self.user_id,
			"latitude": float(self.latitude),
			"longitude": float(self.longitude),
			"address": self.address,
			"verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
		}


class Project(db.Model):
	__tablename__ = "projects"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	project_name = db.Column(db.Text, nullable=False)
	location = db.Column(db.Text, nullable=False)
	latitude = db.Column(db.Numeric(10, 8), nullable=False)
	longitude = db.Column(db.Numeric(11, 8), nullable=False)
	contractor = db.Column(db.Text, nullable=False)
	cost = db.Column(db.Numeric(15, 2), nullable=False)
	start_date = db.Column(db.String(50), nullable=True)
	completion_date = db.Column(db.String(50), nullable=True)
	fiscal_year = db.Column(db.String(20), nullable=False, index=True)
	region = db.Column(db.String(120), nullable=False, index=True)
	notes = db.Column(db.Text, nullable=True)
	status = db.Column(db.String(50), nullable=False, default=DEFAULT_PROJECT_STATUS, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False, index=True)

	# Reactions are removed together with their project.
	reactions = db.relationship("Reaction", back_populates="project", lazy="dynamic", cascade="all, delete-orphan")

	def summary_payload(self) -> dict:
		return {
			"id": self.id,
			"projectName": self.project_name,
			"contractor": self.contractor,
			"region": self.region,
			"location": self.location,
			"cost": float(self.cost) if self.cost is not None else None,
		}

	def to_payload(self) -> dict:
		return {
			"id": self.id,
			"projectname": self.project_name,
			"location": self.location,
			"latitude": float(self.latitude) if self.latitude is not None else None,
			"longitude": float(self.longitude) if self.longitude is not None else None,
			"contractor": self.contractor,
			"cost": float(self.cost) if self.cost is not None else None,
			"start_date": self.start_date,
			"completion_date": self.completion_date,
			"fy": self.fiscal_year,
			"region": self.region,
			"other_details": self.notes,
			"status": self.status,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}


class Reaction(db.Model):
	__tablename__ = "reactions"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
	rating = db.Column(db.String(20), nullable=False, index=True)
	comment = db.Column(db.Text, nullable=True)
	is_proximity_verified = db.Column(db.Boolean, default=False, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.UniqueConstraint("user_id", "project_id", name="uq_reaction_user_project"),
		db.CheckConstraint(
			"rating IN ('excellent','standard','sub-standard','ghost')",
			name="ck_reaction_rating_valid",
		),
	)

	user = db.relationship("User", back_populates="reactions")
	project = db.relationship("Project", back_populates="reactions")

	def to_payload(self) -> dict:
		return {
			"id": self.id,
			"userId": self.user_id,
			"projectId": self.project_id,
			"rating": self.rating,
			"comment": self.comment,
			"isProximityVerified": bool(self.is_proximity_verified),
			"createdAt": self.created_at.isoformat() if self.created_at else None,
			"updatedAt": self.updated_at.isoformat() if self.updated_at else None,
		}


class Setting(db.Model):
	__tablename__ = "settings"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	key = db.Column(db.String(120), unique=True, nullable=False, index=True)
	value = db.Column(db.JSON, nullable=False)
	description = db.Column(db.String(255), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
