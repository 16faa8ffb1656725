import logging

from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .serializers import UserLoginSerializer, UserRegistrationSerializer, UserSerializer

logger = logging.getLogger(__name__)

token_response_schema = openapi.Schema(
    type=openapi.TYPE_OBJECT,
    properties={
        "message": openapi.Schema(type=openapi.TYPE_STRING),
        "access_token": openapi.Schema(type=openapi.TYPE_STRING),
        "refresh_token": openapi.Schema(type=openapi.TYPE_STRING),
        "user": openapi.Schema(type=openapi.TYPE_OBJECT),
    },
)


def token_response(user, message, status_code):
    refresh = RefreshToken.for_user(user)
    return Response(
        {
            "message": message,
            "access_token": str(refresh.access_token),
            "refresh_token": str(refresh),
            "user": UserSerializer(user).data,
        },
        status=status_code,
    )


class UserRegistrationView(APIView):
    permission_classes = [permissions.AllowAny]

    @swagger_auto_schema(
        operation_summary="Register a new user",
        request_body=UserRegistrationSerializer,
        responses={
            201: openapi.Response(description="User registered successfully", schema=token_response_schema),
            400: openapi.Response(description="Validation errors in request body"),
            409: openapi.Response(description="Email already registered"),
        }
    )
    def post(self, request):
        serializer = UserRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"Registered user {user.id}")
        return token_response(user, "User registered successfully", status.HTTP_201_CREATED)


class UserLoginView(APIView):
    permission_classes = [permissions.AllowAny]

    @swagger_auto_schema(
        request_body=UserLoginSerializer,
        responses={
            status.HTTP_200_OK: openapi.Response(description="Login successful", schema=token_response_schema),
            status.HTTP_401_UNAUTHORIZED: "Invalid credentials",
        },
        operation_description="Authenticate user and return JWT tokens",
    )
    def post(self, request):
        serializer = UserLoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data["user"]
        return token_response(user, "Login successful", status.HTTP_200_OK)


class CurrentUserView(generics.RetrieveAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user
