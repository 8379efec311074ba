from rest_framework.decorators import api_view
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
import logging

from .models import UserManager, UserError

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ('email', 'username', 'password', 'passwordCheck')


def _body(request):
    data = request.data
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _require(data, names):
    missing = [name for name in names if not data.get(name)]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")


@api_view(['POST'])
def check_user(request):
    """
    Tell whether a username/password pair may access the application
    """
    data = _body(request)
    logger.debug('Checking if user is registered')
    can_access = UserManager.check(data.get('username'), data.get('password'))
    return Response({'canAccess': can_access})

@api_view(['POST'])
def register_user(request):
    """
    Register a new user. Refusals are reported with an errorCode:
    1 email taken, 2 username taken, 3 passwords differ
    """
    data = _body(request)
    logger.debug('Trying to register a new user')
    _require(data, CREDENTIAL_FIELDS)
    try:
        UserManager.register(
            data.get('email'),
            data.get('username'),
            data.get('password'),
            data.get('passwordCheck')
        )
    except UserError as e:
        logger.info(f"Registration refused: {str(e)}")
        return Response({'status': False, 'errorCode': e.error_code})
    return Response({'status': True})

@api_view(['PUT'])
def change_password(request):
    """
    Change a user's password. Refusals are reported with an errorCode:
    1 unknown user, 2 passwords differ
    """
    data = _body(request)
    _require(data, CREDENTIAL_FIELDS)
    try:
        UserManager.change_password(
            data.get('email'),
            data.get('username'),
            data.get('password'),
            data.get('passwordCheck')
        )
    except UserError as e:
        logger.info(f"Password change refused: {str(e)}")
        return Response({'status': False, 'errorCode': e.error_code})
    return Response({'status': True})
