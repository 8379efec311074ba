from django.urls import path
from . import views

urlpatterns = [
    path('checkUser', views.check_user, name='check-user'),
    path('registerUser', views.register_user, name='register-user'),
    path('changePassword', views.change_password, name='change-password'),
]
