# users/models.py
import logging

from django.contrib.auth.hashers import make_password, check_password
from pymongo.errors import DuplicateKeyError

from databyter import database

logger = logging.getLogger(__name__)


class UserError(Exception):
    """Base class for user operations refused with an error code"""
    error_code = None


class DuplicateEmail(UserError):
    error_code = 1


class DuplicateUsername(UserError):
    error_code = 2


class PasswordMismatch(UserError):
    def __init__(self, error_code, message="Passwords do not match"):
        super().__init__(message)
        self.error_code = error_code


class UserNotFound(UserError):
    error_code = 1


class UserManager:
    """
    Users collection. Passwords are stored as Django password hashes, never
    in clear text.
    """

    @staticmethod
    def find_by_username(username):
        return database.get_collection(database.USERS).find_one({'username': username})

    @staticmethod
    def check(username, password):
        """Whether the credentials match a registered user"""
        if not username or not password:
            return False
        user = UserManager.find_by_username(username)
        if user is None:
            return False
        return check_password(password, user.get('password', ''))

    @staticmethod
    def register(email, username, password, password_check):
        """Register a new user, raising a UserError when refused"""
        users = database.get_collection(database.USERS)

        if users.count_documents({'email': email}) != 0:
            raise DuplicateEmail(f"Email '{email}' is already registered")
        if users.count_documents({'username': username}) != 0:
            raise DuplicateUsername(f"Username '{username}' is already taken")
        if password != password_check:
            raise PasswordMismatch(3)

        try:
            users.insert_one({
                'email': email,
                'username': username,
                'password': make_password(password)
            })
        except DuplicateKeyError as e:
            # Lost a race against a concurrent registration
            key_pattern = (e.details or {}).get('keyPattern', {})
            if 'email' in key_pattern:
                raise DuplicateEmail(f"Email '{email}' is already registered")
            raise DuplicateUsername(f"Username '{username}' is already taken")

        logger.info(f"User '{username}' registered")

    @staticmethod
    def change_password(email, username, password, password_check):
        """Replace the password of the user identified by username and email"""
        users = database.get_collection(database.USERS)

        if users.count_documents({'username': username, 'email': email}) == 0:
            raise UserNotFound(f"No user '{username}' with email '{email}'")
        if password != password_check:
            raise PasswordMismatch(2)

        users.update_one(
            {'username': username, 'email': email},
            {'$set': {'password': make_password(password)}}
        )
        logger.info(f"Password changed for user '{username}'")
