"""
Authentication manager: password hashing, credential checks, JWT issuance
and resolution of Google identities to local users.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.config import AuthConfig
from auth.errors import AuthError, AuthenticationError, OAuthConflictError, UserExistsError
from auth.google_oauth import OAuthAssertion
from auth.models import DatabaseManager, User


class AuthManager:
    """Authentication manager"""

    def __init__(self, config: AuthConfig, db: DatabaseManager):
        self.config = config
        self.db = db
        self.jwt_secret = config.jwt_secret
        self.jwt_algorithm = config.jwt_algorithm
        self.jwt_expiry = config.jwt_expiry
        self.bcrypt_rounds = config.bcrypt_rounds
        logger.info("AuthManager initialized")

    # ==================== PASSWORD HASHING ====================

    def _hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        password_bytes = password.encode('utf-8')[:72]
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode('utf-8')

    def _verify_password(self, password: str, password_hash: str) -> bool:
        """Verify password against hash"""
        if not password_hash:
            logger.debug("[VERIFY] No password hash stored for account")
            return False

        try:
            result = bcrypt.checkpw(password.encode('utf-8')[:72], password_hash.encode('utf-8'))
            logger.debug(f"[VERIFY] bcrypt.checkpw() result: {result}")
            return result
        except ValueError as e:
            # Malformed hash in the store
            logger.error(f"[VERIFY] Exception in password verification: {type(e).__name__}: {e}")
            return False

    # ==================== REGISTRATION ====================

    def create_user(self, username: str, password: str, email: str = None,
                    full_name: str = None) -> User:
        """Create a local user with a bcrypt-hashed password"""
        if len(password) < 8:
            raise ValueError("Password must be at least 8 characters")

        session = self.db.get_session()
        try:
            logger.info(f"[REGISTER] Creating user: {username}")
            user = User(
                username=username,
                email=email.strip().lower() if email else None,
                password_hash=self._hash_password(password),
                full_name=full_name,
                email_verified=False,
                is_active=True,
            )
            session.add(user)
            session.commit()
            logger.info(f"[REGISTER] User created: {username} ({user.user_id})")
            return user
        except IntegrityError:
            session.rollback()
            logger.warning(f"[REGISTER] Username or email already registered: {username}")
            raise UserExistsError("Username or email already registered")
        finally:
            session.close()

    def initialize_admin_user(self) -> Optional[User]:
        """Create the configured initial admin if the users table is empty"""
        username = self.config.admin_initial_username
        password = self.config.admin_initial_password
        if not username or not password:
            return None

        session = self.db.get_session()
        try:
            if session.query(User).count() > 0:
                logger.debug("[STARTUP] Users already exist, skipping admin bootstrap")
                return None
        finally:
            session.close()

        try:
            user = self.create_user(username, password, full_name="Initial Admin")
        except UserExistsError:
            # Another worker bootstrapped first
            return None
        logger.info(f"[STARTUP] Initial admin user created: {username}")
        return user

    # ==================== LOCAL LOGIN ====================

    def validate_user(self, username: str, password: str) -> Optional[User]:
        """Return the user if username/password match an active account"""
        session = self.db.get_session()
        try:
            logger.info(f"[LOGIN] Validating credentials for: {username}")
            user = session.query(User).filter_by(username=username).first()
            if not user:
                logger.warning(f"[LOGIN] User not found: {username}")
                return None

            if not self._verify_password(password, user.password_hash):
                logger.warning(f"[LOGIN] Password verification failed for: {username}")
                return None

            if not user.is_active:
                logger.warning(f"[LOGIN] Account is disabled for: {username}")
                return None

            user.last_login = datetime.now(timezone.utc)
            session.commit()
            return user
        finally:
            session.close()

    def verify_password(self, username: str, password: str) -> bool:
        """Whether password matches the stored hash for username"""
        session = self.db.get_session()
        try:
            user = session.query(User).filter_by(username=username).first()
            if not user:
                logger.debug(f"[VERIFY] User not found: {username}")
                return False
            return self._verify_password(password, user.password_hash)
        finally:
            session.close()

    # ==================== TOKENS ====================

    def get_jwt_token(self, user: User) -> dict:
        """
        Issue a signed credential for user.

        The claim set is the same for local and OAuth logins so a token's
        origin cannot be told from its structure.
        """
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": user.user_id,
                "username": user.username,
                "email": user.email,
                "iat": now,
                "exp": now + timedelta(seconds=self.jwt_expiry),
            },
            self.jwt_secret,
            algorithm=self.jwt_algorithm
        )
        logger.info(f"[TOKEN] Issued token for user: {user.user_id}")
        return {"token": token}

    def verify_token(self, token: str) -> Optional[dict]:
        """Verify JWT token and return payload"""
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.jwt_algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
            logger.debug(f"[TOKEN_VERIFY] Token verified successfully for user: {payload.get('sub')}")
            return payload
        except jwt.ExpiredSignatureError:
            logger.warning("[TOKEN_VERIFY] Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"[TOKEN_VERIFY] Invalid token: {e}")
            return None

    # ==================== OAUTH ====================

    def validate_oauth_user(self, assertion: OAuthAssertion) -> User:
        """
        Resolve a provider-validated identity to a local user (find or create).

        Order:
          1. user already linked to the Google subject
          2. existing account with the same email: linked only when Google
             reports the email as verified and the account is not linked to
             another subject, otherwise OAuthConflictError
          3. new account; a unique-constraint violation means a concurrent
             callback created it first, so the row is re-read
        """
        if not assertion.subject:
            raise AuthenticationError("OAuth assertion missing subject")

        session = self.db.get_session()
        try:
            user = self._find_by_google_id(session, assertion.subject)
            if user:
                user.last_login = datetime.now(timezone.utc)
                session.commit()
                logger.info(f"[OAUTH] Resolved existing user {user.user_id} for subject {assertion.subject}")
                return user

            email = (assertion.email or "").strip().lower() or None
            if email:
                existing = session.query(User).filter_by(email=email).first()
                if existing is not None:
                    return self._link_google_identity(session, existing, assertion)

            user = User(
                username=email or f"google_{assertion.subject}",
                email=email,
                password_hash=None,
                full_name=assertion.name,
                google_id=assertion.subject,
                email_verified=bool(email and assertion.email_verified),
                is_active=True,
                last_login=datetime.now(timezone.utc),
            )
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(f"[OAUTH] Insert raced for subject {assertion.subject}, re-reading")
                return self._reread_or_conflict(session, assertion.subject)

            logger.info(f"[OAUTH] Created user {user.user_id} for subject {assertion.subject}")
            return user
        except AuthError:
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[OAUTH] Identity resolution error: {type(e).__name__}: {e}")
            raise
        finally:
            session.close()

    def _link_google_identity(self, session, existing: User, assertion: OAuthAssertion) -> User:
        """Attach the Google subject to an existing account matched by email"""
        if existing.google_id and existing.google_id != assertion.subject:
            logger.warning(f"[OAUTH] Email {existing.email} already linked to another Google account")
            raise OAuthConflictError("Email is already linked to a different Google account")

        if not assertion.email_verified:
            logger.warning(f"[OAUTH] Refusing to link unverified Google email to {existing.user_id}")
            raise OAuthConflictError("Google email is not verified; cannot link to the existing account")

        try:
            result = session.execute(
                update(User)
                .where(User.user_id == existing.user_id, User.google_id.is_(None))
                .values(google_id=assertion.subject, email_verified=True,
                        last_login=datetime.now(timezone.utc))
            )
            session.commit()
        except IntegrityError:
            session.rollback()
            return self._reread_or_conflict(session, assertion.subject)

        if result.rowcount == 0:
            # Linked by a concurrent callback between our read and update
            return self._reread_or_conflict(session, assertion.subject)

        session.refresh(existing)
        logger.info(f"[OAUTH] Linked subject {assertion.subject} to existing user {existing.user_id}")
        return existing

    def _reread_or_conflict(self, session, google_id: str) -> User:
        session.expire_all()
        user = self._find_by_google_id(session, google_id)
        if user is None:
            raise OAuthConflictError("Cannot resolve a unique account for this Google identity")
        return user

    @staticmethod
    def _find_by_google_id(session, google_id: str) -> Optional[User]:
        return session.query(User).filter_by(google_id=google_id).first()
