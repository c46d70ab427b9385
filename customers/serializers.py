# Django Import
from rest_framework import serializers


# Python Import

# Local Imports
from .models import Customer


class CustomerSerializer(serializers.ModelSerializer):

    name = serializers.CharField(max_length=255, required=True)
    phone_number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    advance_balance = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )

    class Meta:
        model = Customer
        fields = [
            'id', 'name', 'phone_number', 'email', 'address', 'city',
            'advance_balance', 'notes', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
