import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import appointments, blood_requests, camps, donations, donors, inventory
from .broadcast import broadcast_blood_request
from .db import get_db
from .errors import CapacityExceeded, DocumentNotFound, InvalidTransition, StoreError
from .geo import sort_by_distance
from .notifications import WatchlistAlerter
from .states import BLOOD_TYPES, VenueType

logger = logging.getLogger(__name__)


def error_response(exc):
    """Map a domain error to the HTTP answer the dashboards expect."""
    if isinstance(exc, CapacityExceeded):
        return Response({"error": str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, InvalidTransition):
        return Response({"error": str(exc)}, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, DocumentNotFound):
        return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    logger.error("Store failure while handling request: %s", exc)
    return Response({"error": "Data store unavailable, please try again"},
                    status=status.HTTP_503_SERVICE_UNAVAILABLE)


DOMAIN_ERRORS = (CapacityExceeded, InvalidTransition, StoreError)


def missing(*names):
    return Response({"error": f"{' and '.join(names)} required"}, status=status.HTTP_400_BAD_REQUEST)


def request_fields(request):
    """Request body as a plain dict; form and multipart bodies arrive as a QueryDict."""
    data = request.data
    if hasattr(data, 'dict'):
        return data.dict()
    return dict(data)


def parse_origin(params):
    """Optional ``lat``/``lng`` query params as an origin dict."""
    lat, lng = params.get('lat'), params.get('lng')
    if lat in (None, '') or lng in (None, ''):
        return None
    return {'lat': float(lat), 'lng': float(lng)}


# Profiles & donors

class ProfileView(APIView):
    def get(self, request):
        user_id = request.query_params.get('userId')
        if not user_id:
            return missing('userId')
        try:
            user = donors.get_user_profile(get_db(), user_id)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        if not user:
            return Response({"error": "User not found"}, status=404)
        return Response(user)

    def post(self, request):
        data = request_fields(request)
        user_id = data.pop('userId', None)
        if not user_id:
            return missing('userId')
        try:
            donors.create_user_profile(get_db(), user_id, data)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": user_id}, status=201)


class DonorRegisterView(APIView):
    def post(self, request):
        data = request.data
        user_id, blood_type = data.get('userId'), data.get('bloodType')
        if not user_id or not blood_type:
            return missing('userId', 'bloodType')
        if blood_type not in BLOOD_TYPES:
            return Response({"error": f"Unknown blood type {blood_type}"}, status=400)
        try:
            donors.register_donor(get_db(), user_id, blood_type, data.get('phone'), data.get('city'))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True})


class DonorEligibilityView(APIView):
    def post(self, request):
        user_id = request.data.get('userId')
        if not user_id or 'isEligible' not in request.data:
            return missing('userId', 'isEligible')
        try:
            donors.update_donor_eligibility(get_db(), user_id, request.data.get('isEligible'))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True})


class DonorSearchView(APIView):
    def get(self, request):
        params = request.query_params
        try:
            origin = parse_origin(params)
        except ValueError:
            return Response({"error": "lat and lng must be numbers"}, status=400)
        try:
            results = donors.search_donors(get_db(), params.get('bloodType'), params.get('location'))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        if origin:
            results = sort_by_distance(results, origin)
        return Response(results)


class DonationHistoryView(APIView):
    def get(self, request, user_id):
        try:
            user = donors.get_user_profile(get_db(), user_id)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        if not user:
            return Response({"error": "User not found"}, status=404)
        return Response(donations.donation_history(user.get('donorProfile')))


class FCMTokenView(APIView):
    def post(self, request):
        user_id = request.data.get('userId')
        token = request.data.get('token')
        if not user_id or not token:
            return missing('userId', 'token')
        try:
            donors.save_fcm_token(get_db(), user_id, token)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True})


class NotificationPermissionView(APIView):
    def post(self, request):
        user_id = request.data.get('userId')
        answer = request.data.get('permission')
        if not user_id or not answer:
            return missing('userId', 'permission')
        try:
            permission = WatchlistAlerter(get_db(), user_id).request_permission(answer)
        except ValueError:
            return Response({"error": f"Unknown permission {answer}"}, status=400)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"permission": permission.value})


# Blood requests

class BloodRequestView(APIView):
    def get(self, request):
        db = get_db()
        donor_id = request.query_params.get('donorId')
        seeker_id = request.query_params.get('seekerId')
        try:
            if donor_id:
                return Response(blood_requests.get_donor_inbox(db, donor_id))
            if seeker_id:
                active, past = blood_requests.split_sent_requests(
                    blood_requests.get_sent_requests(db, seeker_id))
                return Response({"active": active, "past": past})
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return missing('donorId or seekerId')

    def post(self, request):
        data = request.data
        required = ('seekerId', 'donorId', 'bloodType')
        if not all(data.get(k) for k in required):
            return missing(*required)
        try:
            request_id = blood_requests.create_request(
                get_db(), data['seekerId'], data.get('seekerName'),
                data['donorId'], data['bloodType'], data.get('donorName'),
            )
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": request_id}, status=201)


class RespondRequestView(APIView):
    def post(self, request, request_id):
        answer = request.data.get('status')
        if not answer:
            return missing('status')
        try:
            updated = blood_requests.respond_to_request(
                get_db(), request_id, answer, donor_phone=request.data.get('donorPhone'))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response(updated)


class CancelRequestView(APIView):
    def post(self, request, request_id):
        try:
            return Response(blood_requests.cancel_request(get_db(), request_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)


class ArchiveRequestView(APIView):
    def post(self, request, request_id):
        try:
            return Response(blood_requests.archive_request(get_db(), request_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)


class FulfilRequestsView(APIView):
    def post(self, request):
        seeker_id = request.data.get('seekerId')
        if not seeker_id:
            return missing('seekerId')
        try:
            closed = blood_requests.mark_all_fulfilled(get_db(), seeker_id)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "closed": closed})


class BroadcastView(APIView):
    def post(self, request):
        data = request.data
        seeker_id = data.get('seekerId')
        donor_ids = data.get('donorIds') or []
        if not seeker_id or not donor_ids:
            return missing('seekerId', 'donorIds')

        db = get_db()
        try:
            targets = [donors.get_user_profile(db, donor_id) for donor_id in donor_ids]
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        targets = [d for d in targets if d]
        if not targets:
            return Response({"error": "None of the donors exist"}, status=404)

        result = broadcast_blood_request(
            db, seeker_id, data.get('seekerName'), targets,
            blood_type=data.get('bloodType'), location=data.get('location'),
        )
        return Response(result.as_dict(), status=201 if result.success else 207)


# Appointments & donations

class AppointmentView(APIView):
    def get(self, request):
        db = get_db()
        donor_id = request.query_params.get('donorId')
        venue_id = request.query_params.get('venueId')
        try:
            if donor_id:
                return Response(appointments.get_donor_appointments(db, donor_id))
            if venue_id:
                return Response(appointments.get_venue_appointments(db, venue_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return missing('donorId or venueId')

    def post(self, request):
        data = request_fields(request)
        required = ('donorId', 'venueId', 'date', 'timeSlot')
        if not all(data.get(k) for k in required):
            return missing(*required)
        try:
            appointment_id = appointments.book_appointment(get_db(), data)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": appointment_id}, status=201)


class CancelAppointmentView(APIView):
    def post(self, request, appointment_id):
        try:
            return Response(appointments.cancel_appointment(get_db(), appointment_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)


class NoShowView(APIView):
    def post(self, request, appointment_id):
        try:
            return Response(appointments.mark_no_show(get_db(), appointment_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)


class CompleteAppointmentView(APIView):
    def post(self, request, appointment_id):
        data = request.data
        required = ('venueId', 'bloodType', 'donorId')
        if not all(data.get(k) for k in required):
            return missing(*required)
        venue_type = data.get('venueType') or VenueType.HOSPITAL.value
        try:
            record = donations.complete_appointment(
                get_db(), appointment_id, data['venueId'], data['bloodType'],
                data['donorId'], data.get('venueName'), venue_type,
            )
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response(record)


class CertificateView(APIView):
    def post(self, request):
        data = request.data
        if not data.get('donorName') or not data.get('date'):
            return missing('donorName', 'date')
        certificate = donations.generate_certificate(data['donorName'], data.get('venueName'), data['date'])
        return Response({
            "certificateId": certificate.certificate_id,
            "donorName": certificate.donor_name,
            "venueName": certificate.venue_name,
            "date": certificate.date,
            "text": certificate.as_text(),
        })


class VenueListView(APIView):
    def get(self, request):
        try:
            origin = parse_origin(request.query_params)
        except ValueError:
            return Response({"error": "lat and lng must be numbers"}, status=400)
        try:
            return Response(appointments.list_venues(get_db(), origin))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)


# Inventory & watchlist

class InventoryListView(APIView):
    def get(self, request):
        params = request.query_params
        try:
            items = inventory.list_active_inventory(get_db())
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response(inventory.filter_inventory(items, params.get('bloodType'), params.get('location')))

    def post(self, request):
        data = request.data
        hospital_id = data.get('hospitalId')
        if not hospital_id or not data.get('hospitalName'):
            return missing('hospitalId', 'hospitalName')
        try:
            inventory.create_hospital_inventory(get_db(), hospital_id, data)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": hospital_id}, status=201)


class InventoryDetailView(APIView):
    def get(self, request, hospital_id):
        try:
            doc = inventory.get_inventory(get_db(), hospital_id)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        if not doc:
            return Response({"error": "Inventory not found"}, status=404)
        return Response(doc)


class StockAdjustView(APIView):
    def post(self, request, hospital_id):
        blood_type = request.data.get('bloodType')
        change = request.data.get('change')
        if not blood_type or change is None:
            return missing('bloodType', 'change')
        if blood_type not in BLOOD_TYPES:
            return Response({"error": f"Unknown blood type {blood_type}"}, status=400)
        try:
            amount = inventory.adjust_stock(get_db(), hospital_id, blood_type, int(change))
        except (TypeError, ValueError):
            return Response({"error": "change must be an integer"}, status=400)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        if amount is None:
            return Response({"error": "Inventory not found"}, status=404)
        return Response({"bloodType": blood_type, "units": amount})


class WatchlistView(APIView):
    def get(self, request):
        user_id = request.query_params.get('userId')
        if not user_id:
            return missing('userId')
        try:
            return Response(inventory.get_watchlist(get_db(), user_id))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)

    def post(self, request):
        data = request.data
        if not data.get('userId') or not data.get('bloodType'):
            return missing('userId', 'bloodType')
        try:
            entry_id = inventory.add_to_watchlist(get_db(), data['userId'], data['bloodType'],
                                                  data.get('location'))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": entry_id}, status=201)


class WatchlistEntryView(APIView):
    def delete(self, request, entry_id):
        try:
            inventory.deactivate_watchlist_entry(get_db(), entry_id)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True})


# Camps

class CampView(APIView):
    def get(self, request):
        db = get_db()
        camps.archive_old_camps(db)
        try:
            upcoming, past = camps.split_camps(camps.get_donation_camps(db))
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"upcoming": upcoming, "past": past})

    def post(self, request):
        data = request_fields(request)
        organizer_id = data.pop('organizerId', None)
        if not organizer_id or not data.get('date'):
            return missing('organizerId', 'date')
        try:
            camp_id = camps.add_donation_camp(get_db(), organizer_id, data)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response({"success": True, "id": camp_id}, status=201)
