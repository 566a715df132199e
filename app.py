import logging
from datetime import date

import click
from flask import (Flask, abort, render_template, request, redirect, url_for, flash, session,
                   jsonify, make_response, send_from_directory)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth import admin_required, current_user, login_user, member_required
from config import Config
from exports import bookings_csv, bookings_pdf
from middleware import MethodOverrideMiddleware
from models import (db, init_db, Booking, Favorite, FavoriteAction, Restaurant, Role, User,
                    BOOKING_TIMES, MAX_PARTY_SIZE, MIN_PARTY_SIZE, STATUS_CONFIRMED)
from uploads import delete_uploaded_image, save_uploaded_image

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
)

app = Flask(__name__)
app.config.from_object(Config)
app.wsgi_app = MethodOverrideMiddleware(app.wsgi_app)

db.init_app(app)
with app.app_context():
    init_db()

RESTAURANT_FIELDS = ('name', 'description', 'address', 'restaurant_city')
BOOKING_FIELDS = ('user_name', 'user_phone', 'party_size', 'booking_date', 'booking_time')

FAVORITE_RESPONSES = {
    FavoriteAction.ADDED: (201, 'Added to your favorites.'),
    FavoriteAction.REMOVED: (200, 'Removed from your favorites.'),
}

LOGIN_ERRORS = {
    'login_required': 'Please log in first.',
}


@app.context_processor
def inject_session_user():
    user = current_user()
    return dict(
        current_user=user,
        logged_in=user is not None,
        current_is_admin=user is not None and user.is_admin,
    )


@app.errorhandler(403)
def forbidden(error):
    return render_template('forbidden.html'), 403


@app.errorhandler(404)
def not_found(error):
    return render_template('not_found.html'), 404


def _restaurant_form():
    form = {field: request.form.get(field, '').strip() for field in RESTAURANT_FIELDS}
    for field in RESTAURANT_FIELDS[1:]:
        form[field] = form[field] or None
    return form


def _parse_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _render_reservation_form(restaurant, form, errors):
    return render_template(
        'reservation_new.html',
        restaurant=restaurant,
        form=form,
        errors=errors,
        times=BOOKING_TIMES,
        min_party_size=MIN_PARTY_SIZE,
        max_party_size=MAX_PARTY_SIZE,
        min_date=date.today().isoformat(),
    )


# Restaurants

@app.route('/')
def index():
    restaurants = Restaurant.query.order_by(Restaurant.id).all()
    return render_template('index.html', restaurants=restaurants)


@app.route('/new')
@admin_required
def new_restaurant(user):
    return render_template('new.html', form={}, errors=[])


@app.route('/restaurants', methods=['POST'])
@admin_required
def create_restaurant(user):
    form = _restaurant_form()
    if not form['name']:
        return render_template('new.html', form=form, errors=['Name is required.'])

    image_filename = save_uploaded_image(request.files.get('image'))
    try:
        restaurant = Restaurant(image_filename=image_filename, **form)
        db.session.add(restaurant)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        delete_uploaded_image(image_filename)
        app.logger.exception('Restaurant creation failed')
        return redirect(url_for('new_restaurant', error='creation_failed'))

    flash(f'"{restaurant.name}" was added.', 'success')
    return redirect(url_for('index'))


@app.route('/restaurants/<int:restaurant_id>')
def show_restaurant(restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    user = current_user()
    favorited = (user is not None and not user.is_admin
                 and Favorite.exists_for(user.id, restaurant.id))
    return render_template('show.html', restaurant=restaurant, favorited=favorited)


@app.route('/restaurants/<int:restaurant_id>/edit')
@admin_required
def edit_restaurant(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    form = {field: getattr(restaurant, field) for field in RESTAURANT_FIELDS}
    return render_template('edit.html', restaurant=restaurant, form=form, errors=[])


@app.route('/restaurants/<int:restaurant_id>', methods=['PUT'])
@admin_required
def update_restaurant(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    form = _restaurant_form()
    if not form['name']:
        return render_template('edit.html', restaurant=restaurant, form=form,
                               errors=['Name is required.'])

    new_image = save_uploaded_image(request.files.get('image'))
    old_image = restaurant.image_filename
    try:
        for field, value in form.items():
            setattr(restaurant, field, value)
        if new_image:
            restaurant.image_filename = new_image
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        delete_uploaded_image(new_image)
        app.logger.exception('Restaurant %s update failed', restaurant_id)
        return redirect(url_for('edit_restaurant', restaurant_id=restaurant_id,
                                error='update_failed'))

    if new_image and old_image:
        delete_uploaded_image(old_image)
    flash(f'"{restaurant.name}" was updated.', 'success')
    return redirect(url_for('index'))


@app.route('/restaurants/<int:restaurant_id>', methods=['DELETE'])
@admin_required
def delete_restaurant(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    name, image = restaurant.name, restaurant.image_filename
    try:
        db.session.delete(restaurant)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception('Restaurant %s deletion failed', restaurant_id)
        return redirect(url_for('show_restaurant', restaurant_id=restaurant_id,
                                error='deletion_failed'))

    delete_uploaded_image(image)
    flash(f'"{name}" was deleted.', 'success')
    return redirect(url_for('index'))


@app.route('/uploads/<path:filename>')
def uploaded_image(filename):
    return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


# Accounts

@app.route('/signup')
def signup():
    return render_template('signup.html', errors=[], username='', email='')


@app.route('/users', methods=['POST'])
def create_user():
    username = request.form.get('username', '').strip()
    email = request.form.get('email', '').strip().lower()
    password = request.form.get('password', '')
    confirmation = request.form.get('password_confirmation', '')

    errors = []
    if not username:
        errors.append('Please enter a username.')
    elif not User.valid_username(username):
        errors.append('Usernames need at least 3 characters: letters, digits and underscores only.')
    elif User.query.filter_by(username=username).first():
        errors.append('This username is already taken.')

    if not email:
        errors.append('Please enter an email address.')
    elif not User.valid_email(email):
        errors.append('Please enter a valid email address.')
    elif User.email_taken(email):
        errors.append('This email address is already registered.')

    if not User.valid_password(password):
        errors.append(f'Passwords need at least {User.MIN_PASSWORD_LENGTH} characters.')
    if password != confirmation:
        errors.append('Password and confirmation do not match.')

    if errors:
        return render_template('signup.html', errors=errors, username=username, email=email)

    user = User(username=username, email=email, role=Role.USER)
    user.set_password(password)
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return render_template('signup.html', username=username, email=email,
                               errors=['This username or email address is already in use.'])
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception('User registration failed')
        return render_template('signup.html', username=username, email=email,
                               errors=['Registration failed. Please try again later.'])

    login_user(user)
    flash(f'Welcome to okitable, {user.username}!', 'success')
    return redirect(url_for('index'))


@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        username_or_email = request.form.get('username_or_email', '').strip()
        password = request.form.get('password', '')

        if not username_or_email:
            error = 'Please enter your username or email address.'
        elif not password:
            error = 'Please enter your password.'
        else:
            user = User.find_by_login(username_or_email)
            if user and user.check_password(password):
                login_user(user)
                flash(f'Welcome back, {user.username}!', 'success')
                return redirect(url_for('index'))
            error = 'Incorrect username or password.'

        return render_template('login.html', error=error, username_or_email=username_or_email)

    if current_user() is not None:
        return redirect(url_for('index'))
    return render_template('login.html', error=LOGIN_ERRORS.get(request.args.get('error')),
                           username_or_email='')


@app.route('/logout', methods=['POST'])
def logout():
    session.clear()
    flash('You have been logged out.', 'info')
    return redirect(url_for('index'))


# Reservations

@app.route('/restaurants/<int:restaurant_id>/reservations/new')
@member_required
def new_reservation(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    return _render_reservation_form(restaurant, {'user_name': user.username}, {})


@app.route('/restaurants/<int:restaurant_id>/reservations', methods=['POST'])
@member_required
def create_reservation(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    form = {field: request.form.get(field, '').strip() for field in BOOKING_FIELDS}

    try:
        booking_date = date.fromisoformat(form['booking_date']) if form['booking_date'] else None
    except ValueError:
        return _render_reservation_form(restaurant, form, {'booking_date': [Booking.INVALID_DATE]})

    booking = Booking(
        restaurant_id=restaurant.id,
        user_id=user.id,
        user_name=form['user_name'],
        user_email=user.email,
        user_phone=form['user_phone'] or None,
        party_size=_parse_int(form['party_size']),
        booking_date=booking_date,
        booking_time=form['booking_time'] or None,
        status=STATUS_CONFIRMED,
    )
    errors = booking.validate()
    if errors:
        return _render_reservation_form(restaurant, form, errors)

    try:
        db.session.add(booking)
        db.session.commit()
    except IntegrityError:
        # another request took the slot between validation and commit
        db.session.rollback()
        return _render_reservation_form(restaurant, form, {'booking_time': [Booking.SLOT_TAKEN]})
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception('Reservation for restaurant %s failed', restaurant_id)
        return redirect(url_for('new_reservation', restaurant_id=restaurant_id,
                                error='creation_failed'))

    app.logger.info('Booking %s confirmed for restaurant %s on %s %s',
                    booking.id, restaurant.id, booking.booking_date, booking.booking_time)
    flash(f'Your table at {restaurant.name} is confirmed.', 'success')
    return redirect(url_for('show_restaurant', restaurant_id=restaurant.id, booking_success='true'))


@app.route('/reservations')
@member_required
def my_reservations(user):
    bookings = (Booking.query.filter_by(user_id=user.id)
                .order_by(Booking.booking_date, Booking.booking_time).all())
    return render_template('reservations.html', bookings=bookings)


@app.route('/reservations/<int:booking_id>/cancel', methods=['POST'])
@member_required
def cancel_reservation(user, booking_id):
    booking = db.get_or_404(Booking, booking_id)
    if booking.user_id != user.id:
        app.logger.warning('User %s tried to cancel booking %s', user.id, booking_id)
        abort(403)
    db.session.delete(booking)
    db.session.commit()
    flash('Reservation canceled.', 'success')
    return redirect(url_for('my_reservations'))


# Favorites

@app.route('/restaurants/<int:restaurant_id>/favorite', methods=['POST'])
@member_required
def toggle_favorite(user, restaurant_id):
    restaurant = db.get_or_404(Restaurant, restaurant_id)
    try:
        action = Favorite.toggle(user.id, restaurant.id)
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception('Favorite toggle failed for user %s', user.id)
        return jsonify(success=False, message='Something went wrong. Please try again.'), 500

    status, message = FAVORITE_RESPONSES[action]
    return jsonify(success=True, action=action.value, message=message), status


@app.route('/favorite')
@member_required
def favorites(user):
    return render_template('favorite.html', restaurants=Favorite.restaurants_for(user.id))


# Admin

def _all_bookings():
    return (Booking.query.join(Restaurant)
            .order_by(Booking.booking_date.desc(), Booking.booking_time.desc()).all())


@app.route('/admin/reservations')
@admin_required
def admin_reservations(user):
    return render_template('admin_reservations.html', bookings=_all_bookings())


@app.route('/admin/reservations.csv')
@admin_required
def export_csv(user):
    output = make_response(bookings_csv(_all_bookings()))
    output.headers['Content-Disposition'] = 'attachment; filename=reservations.csv'
    output.headers['Content-Type'] = 'text/csv; charset=utf-8'
    return output


@app.route('/admin/reservations.pdf')
@admin_required
def export_pdf(user):
    return make_response(bookings_pdf(_all_bookings()), 200, {
        'Content-Type': 'application/pdf',
        'Content-Disposition': 'attachment; filename=reservations.pdf',
    })


@app.cli.command('create-admin')
@click.argument('username')
@click.argument('email')
@click.password_option()
def create_admin(username, email, password):
    """Create an administrator, or promote an existing user and reset their password."""
    admin = User.query.filter_by(username=username).first()
    if admin is None:
        admin = User(username=username, email=email.strip().lower())
        db.session.add(admin)
    admin.role = Role.ADMIN
    admin.set_password(password)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f'The email address "{email}" is already in use.')
    click.echo(f'Administrator "{admin.username}" is ready ({admin.email}).')


if __name__ == '__main__':
    app.run(debug=True)
