from markupsafe import Markup

from keynote import Binding, Inline, Presenter

SCRIPT = "<script>alert(1);</script>"


class InlineUserPresenter(Inline, Presenter, inline=("jinja", "mako")):
    title = "presenter title"

    def display_name(self):
        return "Ada"

    def simple_template(self):
        return self.erb()
        # Here's some math: <%= 2 + 2 %>

    def attributes(self):
        self.greetee = "world"
        return self.erb()
        # Hello <%= greetee %>!

    def locals_from_mapping(self):
        return self.erb({"local": "H"})
        # Local <%= local %>

    def locals_from_keywords(self):
        return self.erb(local="H")
        # Local <%= local %>

    def locals_from_binding(self):
        local = "H"
        return self.erb(Binding.capture())
        # Local <%= local %>

    def method_calls(self):
        return self.erb()
        # <%= locals_from_mapping() %>
        # <%= locals_from_binding() %>

    def optional_title(self, **extra):
        return self.erb(extra)
        # <h1><%= title %></h1>

    def error_handling(self):
        return self.erb()
        # <% raise RuntimeError("UH OH") %>

    def error_line(self):
        return self.erb()
        # <p>
        #   <%= missing_helper() %>
        # </p>

    def nested_error(self):
        return self.erb()
        # <%= error_handling() %>

    def fix_indentation(self):
        return self.erb()
        #     <div class="indented_slightly">
        #       <% for i in range(2, 5): %><%= i %> times <% end %>
        #     </div>

    def view_helper(self):
        return self.erb()
        # <%== link_to(display_name(), "/users/1") %>

    def erb_escaping(self):
        escaped = self.erb({"script": SCRIPT})
        # <%= script %>
        raw = self.erb({"script": SCRIPT})
        # <%= Markup(script) %>
        return escaped + raw

    def jinja_escaping(self):
        escaped = self.jinja({"script": SCRIPT})
        # {{ script }}
        raw = self.jinja({"script": SCRIPT})
        # {{ script | safe }}
        return escaped + raw

    def mako_escaping(self):
        escaped = self.mako({"script": SCRIPT})
        # ${script}
        raw = self.mako({"script": Markup(SCRIPT)})
        # ${script}
        return escaped + raw

    def jinja_host_lookup(self):
        return self.jinja(greeting="Hi")
        # {{ greeting }}, {{ display_name() }}

    def mako_host_lookup(self):
        return self.mako(greeting="Hi")
        # ${greeting}, ${display_name()}

    def jinja_loop(self):
        return self.jinja(items=[1, 2, 3])
        # {% for item in items %}
        # <li>{{ item }}</li>
        # {% endfor %}

    def literal(self):
        return self.erb(source="""
            <p><%= display_name() %></p>
        """)

    def empty(self):
        return self.erb()

    def buffer_state(self):
        return self.erb()
        # <% record_buffer() %>

    def record_buffer(self):
        self.seen = (self.output_buffer, self.current_template, self.virtual_path)

    def badge(self):
        return self.erb()
        # <b><%= display_name() %></b>

    def card(self):
        return self.erb()
        # <div><%= badge() %></div>

    def jinja_card(self):
        return self.jinja()
        # <div>{{ badge() }}</div>

    def mako_card(self):
        return self.mako()
        # <div>${badge()}</div>
